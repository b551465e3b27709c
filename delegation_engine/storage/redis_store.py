# redis_store.py - Redis-based persistence
# This file stores workflows, tasks, steps, instructions, traces and handoff records in Redis.

import redis
import json
import logging
from typing import List, Optional

from .base import PersistenceStore
from ..agent_service.models import HandoffRecord, Trace
from ..workflow_service.models import Task, TaskInstruction, TaskStep, Workflow

logger = logging.getLogger(__name__)

class RedisStore(PersistenceStore):
    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 password: Optional[str] = None, redis_client=None):
        self.redis_client = redis_client or redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True
        )

    def ping(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except Exception as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    # Workflows
    async def store_workflow(self, workflow: Workflow) -> bool:
        """Store workflow definition in Redis."""
        try:
            self.redis_client.set(f"workflow:{workflow.id}", workflow.model_dump_json())
            self.redis_client.sadd("workflows:all", workflow.id)
            if workflow.user_id:
                self.redis_client.sadd(f"workflows:user:{workflow.user_id}", workflow.id)

            logger.info(f"Stored workflow {workflow.id}")
            return True

        except Exception as e:
            logger.error(f"Failed to store workflow {workflow.id}: {str(e)}")
            return False

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        try:
            workflow_data = self.redis_client.get(f"workflow:{workflow_id}")
            if not workflow_data:
                return None
            return Workflow.model_validate_json(workflow_data)

        except Exception as e:
            logger.error(f"Failed to get workflow {workflow_id}: {str(e)}")
            return None

    async def list_workflows(self, user_id: Optional[str] = None) -> List[Workflow]:
        try:
            index_key = f"workflows:user:{user_id}" if user_id else "workflows:all"
            workflows = []
            for workflow_id in self.redis_client.smembers(index_key):
                workflow = await self.get_workflow(workflow_id)
                if workflow:
                    workflows.append(workflow)

            return sorted(workflows, key=lambda w: w.created_at, reverse=True)

        except Exception as e:
            logger.error(f"Failed to list workflows: {str(e)}")
            return []

    async def delete_workflow(self, workflow_id: str) -> bool:
        try:
            workflow = await self.get_workflow(workflow_id)
            if not workflow:
                return False

            self.redis_client.delete(f"workflow:{workflow_id}")
            self.redis_client.srem("workflows:all", workflow_id)
            if workflow.user_id:
                self.redis_client.srem(f"workflows:user:{workflow.user_id}", workflow_id)

            logger.info(f"Deleted workflow {workflow_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to delete workflow {workflow_id}: {str(e)}")
            return False

    # Tasks
    async def store_task(self, task: Task) -> bool:
        try:
            self.redis_client.set(f"task:{task.id}", task.model_dump_json())
            self.redis_client.sadd("tasks:all", task.id)
            if task.user_id:
                self.redis_client.sadd(f"tasks:user:{task.user_id}", task.id)
            return True

        except Exception as e:
            logger.error(f"Failed to store task {task.id}: {str(e)}")
            return False

    async def get_task(self, task_id: str) -> Optional[Task]:
        try:
            task_data = self.redis_client.get(f"task:{task_id}")
            if not task_data:
                return None
            return Task.model_validate_json(task_data)

        except Exception as e:
            logger.error(f"Failed to get task {task_id}: {str(e)}")
            return None

    async def list_tasks(self, user_id: Optional[str] = None,
                         workflow_id: Optional[str] = None) -> List[Task]:
        try:
            index_key = f"tasks:user:{user_id}" if user_id else "tasks:all"
            tasks = []
            for task_id in self.redis_client.smembers(index_key):
                task = await self.get_task(task_id)
                if task and (workflow_id is None or task.workflow_id == workflow_id):
                    tasks.append(task)

            return sorted(tasks, key=lambda t: t.created_at, reverse=True)

        except Exception as e:
            logger.error(f"Failed to list tasks: {str(e)}")
            return []

    # Task steps
    async def store_task_step(self, step: TaskStep) -> bool:
        try:
            self.redis_client.hset(f"task:{step.task_id}:steps", step.id, step.model_dump_json())
            return True

        except Exception as e:
            logger.error(f"Failed to store step {step.node_id} of task {step.task_id}: {str(e)}")
            return False

    async def list_task_steps(self, task_id: str) -> List[TaskStep]:
        try:
            raw_steps = self.redis_client.hgetall(f"task:{task_id}:steps")
            steps = [TaskStep.model_validate_json(data) for data in raw_steps.values()]
            return sorted(steps, key=lambda s: s.created_at)

        except Exception as e:
            logger.error(f"Failed to list steps of task {task_id}: {str(e)}")
            return []

    # Task instructions
    async def add_instruction(self, instruction: TaskInstruction) -> bool:
        try:
            self.redis_client.set(f"instruction:{instruction.id}", instruction.model_dump_json())
            self.redis_client.rpush(f"task:{instruction.task_id}:instructions", instruction.id)
            return True

        except Exception as e:
            logger.error(f"Failed to add instruction to task {instruction.task_id}: {str(e)}")
            return False

    async def list_instructions(self, task_id: str) -> List[TaskInstruction]:
        try:
            instructions = []
            for instruction_id in self.redis_client.lrange(f"task:{task_id}:instructions", 0, -1):
                data = self.redis_client.get(f"instruction:{instruction_id}")
                if data:
                    instructions.append(TaskInstruction.model_validate_json(data))
            return instructions

        except Exception as e:
            logger.error(f"Failed to list instructions of task {task_id}: {str(e)}")
            return []

    async def mark_instruction_applied(self, instruction_id: str) -> bool:
        try:
            key = f"instruction:{instruction_id}"
            data = self.redis_client.get(key)
            if not data:
                return False

            instruction = TaskInstruction.model_validate_json(data)
            instruction.applied = True
            self.redis_client.set(key, instruction.model_dump_json())
            return True

        except Exception as e:
            logger.error(f"Failed to mark instruction {instruction_id} applied: {str(e)}")
            return False

    # Traces
    async def store_trace(self, trace: Trace) -> bool:
        try:
            score = trace.started_at.timestamp()
            self.redis_client.set(f"trace:{trace.id}", trace.model_dump_json())
            self.redis_client.zadd("traces:all", {trace.id: score})
            if trace.owner_id:
                self.redis_client.zadd(f"traces:owner:{trace.owner_id}", {trace.id: score})
            return True

        except Exception as e:
            logger.error(f"Failed to store trace {trace.id}: {str(e)}")
            return False

    async def get_trace(self, trace_id: str) -> Optional[Trace]:
        try:
            trace_data = self.redis_client.get(f"trace:{trace_id}")
            if not trace_data:
                return None
            return Trace.model_validate_json(trace_data)

        except Exception as e:
            logger.error(f"Failed to get trace {trace_id}: {str(e)}")
            return None

    async def list_traces(self, owner_id: Optional[str] = None, limit: int = 50) -> List[Trace]:
        try:
            index_key = f"traces:owner:{owner_id}" if owner_id else "traces:all"
            traces = []
            for trace_id in self.redis_client.zrevrange(index_key, 0, limit - 1):
                trace = await self.get_trace(trace_id)
                if trace:
                    traces.append(trace)
            return traces

        except Exception as e:
            logger.error(f"Failed to list traces: {str(e)}")
            return []

    # Handoff records
    async def store_handoff(self, record: HandoffRecord) -> bool:
        try:
            self.redis_client.rpush(f"handoffs:{record.trace_id or 'untraced'}", record.model_dump_json())
            return True

        except Exception as e:
            logger.error(f"Failed to store handoff {record.from_agent} -> {record.to_agent}: {str(e)}")
            return False

    async def list_handoffs(self, trace_id: str) -> List[HandoffRecord]:
        try:
            return [
                HandoffRecord.model_validate_json(data)
                for data in self.redis_client.lrange(f"handoffs:{trace_id}", 0, -1)
            ]

        except Exception as e:
            logger.error(f"Failed to list handoffs of trace {trace_id}: {str(e)}")
            return []
