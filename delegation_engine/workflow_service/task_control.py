# task_control.py - Cooperative task control
# This file defines the token the executor polls between nodes for cancel, pause and new instructions.

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .models import TaskInstruction, TaskStatus

logger = logging.getLogger(__name__)

STOP_STATUSES = (TaskStatus.CANCELLED, TaskStatus.PAUSED)

class ControlSignal(BaseModel):
    status: TaskStatus
    instruction: Optional[TaskInstruction] = None

    @property
    def should_stop(self) -> bool:
        return self.status in STOP_STATUSES

class TaskControl:
    """Control channel for one task, backed by the persistence store.

    The executor calls poll() at every node boundary. Other actors change
    the task through cancel(), pause(), resume() and add_instruction().
    """

    def __init__(self, store, task_id: str):
        self.store = store
        self.task_id = task_id

    async def poll(self) -> ControlSignal:
        """Read the task status and the oldest unapplied instruction."""
        task = await self.store.get_task(self.task_id)
        if task is None:
            logger.warning(f"Task {self.task_id} could not be read, continuing")
            status = TaskStatus.IN_PROGRESS
        else:
            status = task.status

        if status in STOP_STATUSES:
            return ControlSignal(status=status)

        pending = await self.store.get_pending_instructions(self.task_id)
        return ControlSignal(status=status, instruction=pending[0] if pending else None)

    async def acknowledge(self, instruction: TaskInstruction) -> bool:
        applied = await self.store.mark_instruction_applied(instruction.id)
        if not applied:
            logger.warning(f"Instruction {instruction.id} of task {self.task_id} was not marked applied")
        return applied

    async def cancel(self) -> bool:
        return await self._set_status(TaskStatus.CANCELLED)

    async def pause(self) -> bool:
        return await self._set_status(TaskStatus.PAUSED)

    async def resume(self) -> bool:
        return await self._set_status(TaskStatus.IN_PROGRESS)

    async def add_instruction(self, content: str) -> Optional[TaskInstruction]:
        instruction = TaskInstruction(task_id=self.task_id, content=content,
                                      created_at=datetime.utcnow())
        if not await self.store.add_instruction(instruction):
            return None
        logger.info(f"Queued instruction {instruction.id} for task {self.task_id}")
        return instruction

    async def _set_status(self, status: TaskStatus) -> bool:
        updated = await self.store.update_task_status(self.task_id, status)
        if updated:
            logger.info(f"Task {self.task_id} set to {status.value}")
        return updated
