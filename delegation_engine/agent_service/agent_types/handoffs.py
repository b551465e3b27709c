# handoffs.py - Handoff descriptors and history filters
# This file defines how one agent transfers a conversation to another.

import inspect
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Type, TYPE_CHECKING, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..models import HistoryEntry, MessageRole, Structured, Unparsed

if TYPE_CHECKING:
    from .agent import Agent

logger = logging.getLogger(__name__)

HANDOFF_TOOL_PREFIX = "handoff_to_"

RECOMMENDED_PROMPT_PREFIX = (
    "# System context\n"
    "You are part of a multi-agent system designed to make agent coordination and execution easy. "
    "Agents use two primary abstractions: **Agents** and **Handoffs**. An agent encompasses "
    "instructions and tools and can hand off a conversation to another agent when appropriate. "
    "Handoffs are achieved by calling a handoff function, generally named `handoff_to_<agent_name>`. "
    "Transfers between agents are handled seamlessly in the background; do not mention or draw "
    "attention to these transfers in your conversation with the user.\n"
)

HistoryFilter = Callable[[List[HistoryEntry]], List[HistoryEntry]]

def prompt_with_handoff_instructions(prompt: str) -> str:
    """Prefix agent instructions with the recommended handoff prompt."""
    return f"{RECOMMENDED_PROMPT_PREFIX}\n\n{prompt}"

def handoff_tool_name(agent_name: str) -> str:
    """Derive the deterministic handoff tool name for a target agent."""
    slug = re.sub(r"[^a-z0-9]+", "_", agent_name.lower()).strip("_")
    return f"{HANDOFF_TOOL_PREFIX}{slug}"

def default_tool_description(agent: "Agent") -> str:
    description = f"Transfer the conversation to the {agent.name} agent"
    if agent.handoff_description:
        description += f". {agent.handoff_description}"
    return description

def parse_json_object(raw_text: Optional[str], model: Optional[Type[BaseModel]] = None) -> Union[Structured, Unparsed]:
    """Parse model-produced JSON into a tagged result.

    Only a JSON object counts as structured data. When a pydantic model is
    given the object must also validate against it.
    """
    text = (raw_text or "").strip()
    try:
        data = json.loads(text) if text else {}
    except json.JSONDecodeError as e:
        return Unparsed(raw_text=raw_text or "", error=f"Invalid JSON: {str(e)}")

    if not isinstance(data, dict):
        return Unparsed(raw_text=raw_text or "", error="Expected a JSON object")

    if model is not None:
        try:
            data = model.model_validate(data).model_dump()
        except ValidationError as e:
            return Unparsed(raw_text=raw_text or "", error=str(e))

    return Structured(data=data)

# History filters

def remove_all_tools(history: List[HistoryEntry]) -> List[HistoryEntry]:
    """Drop tool results and assistant tool-call entries."""
    return [
        entry for entry in history
        if entry.role != MessageRole.TOOL and entry.tool_call is None
    ]

def keep_only_last_user_message(history: List[HistoryEntry]) -> List[HistoryEntry]:
    for entry in reversed(history):
        if entry.role == MessageRole.USER:
            return [entry]
    return []

def keep_last_messages(count: int) -> HistoryFilter:
    def _filter(history: List[HistoryEntry]) -> List[HistoryEntry]:
        return list(history[-count:]) if count > 0 else []
    return _filter

class Handoff(BaseModel):
    """A tool-call-triggered transfer from one agent to another."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    agent: Any  # target Agent
    tool_name: str
    tool_description: str
    input_model: Optional[Type[BaseModel]] = None
    input_filter: Optional[HistoryFilter] = None
    on_handoff: Optional[Callable[..., Any]] = None

    @property
    def agent_name(self) -> str:
        return self.agent.name

    @property
    def input_schema(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "reason": {
                "type": "string",
                "description": "The reason for transferring the conversation",
            }
        }
        required = ["reason"]
        if self.input_model is not None:
            extra = self.input_model.model_json_schema()
            for key, value in extra.get("properties", {}).items():
                properties.setdefault(key, value)
            required.extend(k for k in extra.get("required", []) if k not in required)
        return {"type": "object", "properties": properties, "required": required}

    def tool_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.tool_name,
                "description": self.tool_description,
                "parameters": self.input_schema,
            },
        }

    def parse_arguments(self, raw_arguments: Optional[str]) -> Union[Structured, Unparsed]:
        result = parse_json_object(raw_arguments)
        if isinstance(result, Unparsed) or self.input_model is None:
            return result

        # Validate the extra fields without losing the reason
        try:
            validated = self.input_model.model_validate(result.data).model_dump()
        except ValidationError as e:
            return Unparsed(raw_text=raw_arguments or "", error=str(e))
        return Structured(data={**result.data, **validated})

    def filter_history(self, history: List[HistoryEntry],
                       fallback: Optional[HistoryFilter] = None) -> List[HistoryEntry]:
        history_filter = self.input_filter or fallback
        if history_filter is None:
            return list(history)
        return list(history_filter(list(history)))

    async def notify(self, context: Dict[str, Any], data: Dict[str, Any]) -> None:
        """Invoke the on_handoff callback, awaiting it when it is a coroutine."""
        if self.on_handoff is None:
            return
        result = self.on_handoff(context, data)
        if inspect.isawaitable(result):
            await result

def handoff(agent: "Agent",
            tool_name: Optional[str] = None,
            tool_description: Optional[str] = None,
            input_model: Optional[Type[BaseModel]] = None,
            input_filter: Optional[HistoryFilter] = None,
            on_handoff: Optional[Callable[..., Any]] = None) -> Handoff:
    """Create a handoff to agent with default naming."""
    return Handoff(
        agent=agent,
        tool_name=tool_name or handoff_tool_name(agent.name),
        tool_description=tool_description or default_tool_description(agent),
        input_model=input_model,
        input_filter=input_filter,
        on_handoff=on_handoff,
    )
