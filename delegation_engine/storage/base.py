# base.py - Persistence interface
# This file defines the store used for workflows, tasks, task steps, instructions, traces and handoffs.

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..agent_service.models import HandoffRecord, Trace
from ..workflow_service.models import (
    Task, TaskInstruction, TaskStatus, TaskStep, Workflow
)

class PersistenceStore(ABC):
    """Async persistence collaborator.

    Write methods return True on success and False when the write failed;
    read methods return None or an empty list when nothing could be read.
    """

    # Workflows
    @abstractmethod
    async def store_workflow(self, workflow: Workflow) -> bool: ...

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]: ...

    @abstractmethod
    async def list_workflows(self, user_id: Optional[str] = None) -> List[Workflow]: ...

    @abstractmethod
    async def delete_workflow(self, workflow_id: str) -> bool: ...

    # Tasks
    @abstractmethod
    async def store_task(self, task: Task) -> bool: ...

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def list_tasks(self, user_id: Optional[str] = None,
                         workflow_id: Optional[str] = None) -> List[Task]: ...

    async def update_task_status(self, task_id: str, status: TaskStatus,
                                 result: Optional[str] = None) -> bool:
        task = await self.get_task(task_id)
        if not task:
            return False
        task.status = status
        if result is not None:
            task.result = result
        task.updated_at = datetime.utcnow()
        return await self.store_task(task)

    # Task steps
    @abstractmethod
    async def store_task_step(self, step: TaskStep) -> bool: ...

    @abstractmethod
    async def list_task_steps(self, task_id: str) -> List[TaskStep]: ...

    # Task instructions
    @abstractmethod
    async def add_instruction(self, instruction: TaskInstruction) -> bool: ...

    @abstractmethod
    async def list_instructions(self, task_id: str) -> List[TaskInstruction]: ...

    @abstractmethod
    async def mark_instruction_applied(self, instruction_id: str) -> bool: ...

    async def get_pending_instructions(self, task_id: str) -> List[TaskInstruction]:
        """Unapplied instructions, oldest first."""
        instructions = await self.list_instructions(task_id)
        pending = [i for i in instructions if not i.applied]
        return sorted(pending, key=lambda i: i.created_at)

    # Traces
    @abstractmethod
    async def store_trace(self, trace: Trace) -> bool: ...

    @abstractmethod
    async def get_trace(self, trace_id: str) -> Optional[Trace]: ...

    @abstractmethod
    async def list_traces(self, owner_id: Optional[str] = None, limit: int = 50) -> List[Trace]: ...

    # Handoff records
    @abstractmethod
    async def store_handoff(self, record: HandoffRecord) -> bool: ...

    @abstractmethod
    async def list_handoffs(self, trace_id: str) -> List[HandoffRecord]: ...

    def ping(self) -> bool:
        return True
