# memory.py - In-process store
# This file keeps workflows, tasks and traces in dictionaries for development and tests.

import itertools
import logging
from typing import Dict, List, Optional

from .base import PersistenceStore
from ..agent_service.models import HandoffRecord, Trace
from ..workflow_service.models import Task, TaskInstruction, TaskStep, Workflow

logger = logging.getLogger(__name__)

class InMemoryStore(PersistenceStore):
    def __init__(self):
        self.workflows: Dict[str, Workflow] = {}
        self.tasks: Dict[str, Task] = {}
        self.steps: Dict[str, Dict[str, TaskStep]] = {}
        self.instructions: Dict[str, Dict[str, TaskInstruction]] = {}
        self.traces: Dict[str, Trace] = {}
        self.handoffs: Dict[str, List[HandoffRecord]] = {}
        self._trace_sequence: Dict[str, int] = {}
        self._counter = itertools.count()

    # Workflows
    async def store_workflow(self, workflow: Workflow) -> bool:
        self.workflows[workflow.id] = workflow.model_copy(deep=True)
        return True

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self.workflows.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    async def list_workflows(self, user_id: Optional[str] = None) -> List[Workflow]:
        workflows = [w for w in self.workflows.values() if user_id is None or w.user_id == user_id]
        return [w.model_copy(deep=True) for w in sorted(workflows, key=lambda w: w.created_at, reverse=True)]

    async def delete_workflow(self, workflow_id: str) -> bool:
        return self.workflows.pop(workflow_id, None) is not None

    # Tasks
    async def store_task(self, task: Task) -> bool:
        self.tasks[task.id] = task.model_copy(deep=True)
        return True

    async def get_task(self, task_id: str) -> Optional[Task]:
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def list_tasks(self, user_id: Optional[str] = None,
                         workflow_id: Optional[str] = None) -> List[Task]:
        tasks = [
            t for t in self.tasks.values()
            if (user_id is None or t.user_id == user_id)
            and (workflow_id is None or t.workflow_id == workflow_id)
        ]
        return [t.model_copy(deep=True) for t in sorted(tasks, key=lambda t: t.created_at, reverse=True)]

    # Task steps
    async def store_task_step(self, step: TaskStep) -> bool:
        self.steps.setdefault(step.task_id, {})[step.id] = step.model_copy(deep=True)
        return True

    async def list_task_steps(self, task_id: str) -> List[TaskStep]:
        return [s.model_copy(deep=True) for s in self.steps.get(task_id, {}).values()]

    # Task instructions
    async def add_instruction(self, instruction: TaskInstruction) -> bool:
        self.instructions.setdefault(instruction.task_id, {})[instruction.id] = instruction.model_copy(deep=True)
        return True

    async def list_instructions(self, task_id: str) -> List[TaskInstruction]:
        return [i.model_copy(deep=True) for i in self.instructions.get(task_id, {}).values()]

    async def mark_instruction_applied(self, instruction_id: str) -> bool:
        for instructions in self.instructions.values():
            if instruction_id in instructions:
                instructions[instruction_id].applied = True
                return True
        return False

    # Traces
    async def store_trace(self, trace: Trace) -> bool:
        if trace.id not in self._trace_sequence:
            self._trace_sequence[trace.id] = next(self._counter)
        self.traces[trace.id] = trace.model_copy(deep=True)
        return True

    async def get_trace(self, trace_id: str) -> Optional[Trace]:
        trace = self.traces.get(trace_id)
        return trace.model_copy(deep=True) if trace else None

    async def list_traces(self, owner_id: Optional[str] = None, limit: int = 50) -> List[Trace]:
        traces = [t for t in self.traces.values() if owner_id is None or t.owner_id == owner_id]
        traces.sort(key=lambda t: (t.started_at, self._trace_sequence[t.id]), reverse=True)
        return [t.model_copy(deep=True) for t in traces[:limit]]

    # Handoff records
    async def store_handoff(self, record: HandoffRecord) -> bool:
        self.handoffs.setdefault(record.trace_id or "untraced", []).append(record.model_copy(deep=True))
        return True

    async def list_handoffs(self, trace_id: str) -> List[HandoffRecord]:
        return [r.model_copy(deep=True) for r in self.handoffs.get(trace_id, [])]
