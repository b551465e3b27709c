# models.py - Pydantic models for agent runs
# This file defines the data models shared by the runner, tracing and the chat API.

from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Optional, Any, Literal, Union, Callable, Annotated
from datetime import datetime
from enum import Enum
import uuid

class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

class ToolCall(BaseModel):
    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:24]}")
    name: str
    arguments: str = ""  # raw JSON text as produced by the model

class HistoryEntry(BaseModel):
    role: MessageRole
    content: Optional[str] = ""
    name: Optional[str] = None  # tool name for tool results
    tool_call_id: Optional[str] = None
    tool_call: Optional[ToolCall] = None  # set on assistant entries that invoked a tool

class ModelSettings(BaseModel):
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None

    def resolve(self, override: Optional["ModelSettings"] = None) -> "ModelSettings":
        """Overlay non-empty values from override onto these settings."""
        if override is None:
            return self
        merged = self.model_dump()
        merged.update({k: v for k, v in override.model_dump().items() if v is not None})
        return ModelSettings(**merged)

# Completion client wire types

class CompletionResult(BaseModel):
    text: str = ""
    tool_call: Optional[ToolCall] = None
    finish_reason: Optional[str] = None

class ToolCallDelta(BaseModel):
    index: int = 0
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""

class CompletionChunk(BaseModel):
    text: str = ""
    tool_call_delta: Optional[ToolCallDelta] = None
    finish_reason: Optional[str] = None

# Tagged parse result

class Structured(BaseModel):
    kind: Literal["structured"] = "structured"
    data: Any

class Unparsed(BaseModel):
    kind: Literal["unparsed"] = "unparsed"
    raw_text: str
    error: Optional[str] = None

ParseResult = Annotated[Union[Structured, Unparsed], Field(discriminator="kind")]

# Run configuration and results

class HandoffRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    from_agent: str
    to_agent: str
    reason: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

# Guardrails take the text and return the replacement text, sync or async
Guardrail = Callable[[str], Any]

class GuardrailResult(BaseModel):
    guardrail: str
    original: str
    processed: str

class RunConfig(BaseModel):
    workflow_name: Optional[str] = None
    trace_id: Optional[str] = None
    group_id: Optional[str] = None
    owner_id: Optional[str] = None
    model: Optional[str] = None  # overrides every agent's model
    model_settings: Optional[ModelSettings] = None
    max_turns: Optional[int] = Field(default=None, gt=0)
    tracing_disabled: bool = False
    trace_include_sensitive_data: Optional[bool] = None
    trace_metadata: Dict[str, Any] = Field(default_factory=dict)
    handoff_input_filter: Optional[Callable[[List[HistoryEntry]], List[HistoryEntry]]] = None
    input_guardrails: List[Guardrail] = Field(default_factory=list)
    output_guardrails: List[Guardrail] = Field(default_factory=list)

class RunResult(BaseModel):
    success: bool
    final_output: str = ""
    handoff_path: List[str] = Field(default_factory=list)
    handoffs: List[HandoffRecord] = Field(default_factory=list)
    last_agent: Optional[str] = None
    turns: int = 0
    max_turns_exceeded: bool = False
    execution_time_ms: float = 0.0
    trace_id: Optional[str] = None
    error: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    structured_output: Optional[ParseResult] = None
    input_guardrail_results: List[GuardrailResult] = Field(default_factory=list)
    output_guardrail_results: List[GuardrailResult] = Field(default_factory=list)

    def to_input_list(self) -> List[HistoryEntry]:
        """History to seed the next run of the same conversation."""
        return list(self.history)

# Tracing

class SpanType(str, Enum):
    AGENT = "agent"
    HANDOFF = "handoff"
    FUNCTION = "function"
    CUSTOM = "custom"

class Span(BaseModel):
    id: str = Field(default_factory=lambda: f"span_{uuid.uuid4().hex}")
    trace_id: str
    parent_id: Optional[str] = None
    type: SpanType
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None

class Trace(BaseModel):
    id: str = Field(default_factory=lambda: f"trace_{uuid.uuid4().hex}")
    workflow_name: str
    group_id: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    spans: List[Span] = Field(default_factory=list)

class SpanNode(BaseModel):
    span: Span
    children: List["SpanNode"] = Field(default_factory=list)

SpanNode.model_rebuild()

class TraceDetail(BaseModel):
    trace: Trace
    span_tree: List[SpanNode] = Field(default_factory=list)

# API models

class ChatRequest(BaseModel):
    message: str
    agent_type: str = "delegation"
    history: List[HistoryEntry] = Field(default_factory=list)
    max_turns: Optional[int] = Field(default=None, gt=0)
    workflow_name: Optional[str] = None
    group_id: Optional[str] = None
    user_id: Optional[str] = None
    tracing_disabled: bool = False

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        if not v or not v.strip():
            raise ValueError("message must not be empty")
        return v

class ChatResponse(BaseModel):
    success: bool
    message: str
    agent: Optional[str] = None
    handoff_path: List[str] = Field(default_factory=list)
    handoffs: List[HandoffRecord] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    trace_id: Optional[str] = None
    max_turns_exceeded: bool = False
    error: Optional[str] = None
