# models.py - Workflow graphs, tasks and step records
# This file defines the data models for workflow definitions and their execution state.

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum
import uuid

class GraphValidationError(ValueError):
    """Raised when a workflow graph cannot be executed as declared."""

class NodeType(str, Enum):
    AGENT = "agent"
    INPUT = "input"
    OUTPUT = "output"

class TaskStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    FAILED = "failed"

class StepStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

class NodeData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    agent_type: Optional[str] = Field(default=None, alias="agentType")
    label: Optional[str] = None
    instructions: Optional[str] = None

class WorkflowNode(BaseModel):
    id: str
    type: str  # NodeType value; unknown types are reported at execution time
    data: NodeData = Field(default_factory=NodeData)

class WorkflowEdge(BaseModel):
    id: Optional[str] = None
    source: str
    target: str

class WorkflowGraph(BaseModel):
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self):
        node_ids = [node.id for node in self.nodes]
        if len(set(node_ids)) != len(node_ids):
            raise ValueError("Node ids must be unique")
        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise ValueError(f"Edge {edge.source} -> {edge.target} references an unknown node")
        return self

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def incoming(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def first_outgoing(self, node_id: str) -> Optional[WorkflowEdge]:
        return next((edge for edge in self.edges if edge.source == node_id), None)

    def check_predecessors(self):
        """Reject graphs where a node would merge the outputs of several predecessors."""
        counts: Dict[str, int] = {}
        for edge in self.edges:
            counts[edge.target] = counts.get(edge.target, 0) + 1
        merged = [node_id for node_id, count in counts.items() if count > 1]
        if merged:
            raise GraphValidationError(
                f"Nodes with more than one incoming edge are not supported: {', '.join(merged)}"
            )

class Workflow(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    graph: WorkflowGraph
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class Task(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: Optional[str] = None
    user_id: Optional[str] = None
    status: TaskStatus = TaskStatus.IN_PROGRESS
    input: str = ""
    result: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class TaskStep(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_id: str
    node_id: str
    status: StepStatus = StepStatus.IN_PROGRESS
    input: str = ""
    output: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

class TaskInstruction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_id: str
    content: str
    applied: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

class WorkflowRunResult(BaseModel):
    completed: bool
    status: TaskStatus
    result: str = ""
    message: Optional[str] = None
    execution_order: List[str] = Field(default_factory=list)
    executed_nodes: List[str] = Field(default_factory=list)
    skipped_nodes: List[str] = Field(default_factory=list)  # unreachable because of cycles
    failed_node: Optional[str] = None

# API models

class WorkflowCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    graph: WorkflowGraph

class WorkflowExecuteRequest(BaseModel):
    input: str
    user_id: Optional[str] = None
    wait: bool = False  # run inline and return the result instead of scheduling

class TaskAction(str, Enum):
    CANCEL = "cancel"
    PAUSE = "pause"
    RESUME = "resume"
    INSTRUCTION = "instruction"

class TaskActionRequest(BaseModel):
    action: TaskAction
    data: Optional[str] = None  # instruction text

class TaskDetail(BaseModel):
    task: Task
    steps: List[TaskStep] = Field(default_factory=list)
    instructions: List[TaskInstruction] = Field(default_factory=list)

class WorkflowExecuteResponse(BaseModel):
    task: Task
    run: Optional[WorkflowRunResult] = None
