# workflow_engine.py - Core execution engine for workflow graphs
# This file orders graph nodes, runs them one at a time and records a step per node.

import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from typing import Dict, List, Optional

from ..agent_service.agent_registry import AgentRegistry
from ..agent_service.agent_types.agent import Agent, AgentConfigurationError
from ..agent_service.models import RunConfig
from ..agent_service.runner import TurnRunner, UserError
from .config import settings
from .event_publisher import WorkflowEventPublisher
from .models import (
    GraphValidationError, NodeType, StepStatus, Task, TaskStatus, TaskStep,
    Workflow, WorkflowGraph, WorkflowNode, WorkflowRunResult
)
from .task_control import TaskControl

logger = logging.getLogger(__name__)

NO_OUTPUT_NODE_RESULT = "Workflow completed but no output node was found"

def compute_execution_order(graph: WorkflowGraph) -> List[str]:
    """Kahn's algorithm over the graph.

    Ready nodes are taken first-in first-out, seeded in node declaration
    order, with successors released in edge order. Nodes on a cycle never
    reach in-degree zero and are left out of the result.
    """
    in_degree: Dict[str, int] = {node.id: 0 for node in graph.nodes}
    successors: Dict[str, List[str]] = {node.id: [] for node in graph.nodes}
    for edge in graph.edges:
        in_degree[edge.target] += 1
        successors[edge.source].append(edge.target)

    ready = deque(node.id for node in graph.nodes if in_degree[node.id] == 0)
    order: List[str] = []
    while ready:
        node_id = ready.popleft()
        order.append(node_id)
        for successor in successors[node_id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                ready.append(successor)

    return order

class WorkflowExecutor:
    def __init__(self, runner: TurnRunner, agent_registry: AgentRegistry, store,
                 event_publisher: Optional[WorkflowEventPublisher] = None):
        self.runner = runner
        self.agent_registry = agent_registry
        self.store = store
        self.event_publisher = event_publisher
        self.running_executions: Dict[str, asyncio.Task] = {}

    async def execute(self, graph: WorkflowGraph, initial_input: str, task_id: str,
                      control: Optional[TaskControl] = None,
                      workflow_id: Optional[str] = None,
                      user_id: Optional[str] = None) -> WorkflowRunResult:
        """Run every orderable node of graph for task_id and return the outcome."""
        logger.info(f"Starting workflow execution for task {task_id}")
        control = control or TaskControl(self.store, task_id)

        try:
            graph.check_predecessors()
        except GraphValidationError as e:
            logger.error(f"Task {task_id} rejected: {str(e)}")
            await self._finish_task(task_id, TaskStatus.FAILED, None)
            await self._publish("publish_workflow_failed", task_id, workflow_id, str(e))
            return WorkflowRunResult(completed=False, status=TaskStatus.FAILED, message=str(e))

        order = compute_execution_order(graph)
        skipped = [node.id for node in graph.nodes if node.id not in order]
        if skipped:
            logger.warning(
                f"Workflow graph for task {task_id} contains a cycle; "
                f"{len(skipped)} node(s) will not run: {', '.join(skipped)}"
            )

        await self._publish("publish_workflow_started", task_id, workflow_id, len(order))

        reused = await self._completed_steps(task_id)
        outputs: Dict[str, str] = {}
        executed: List[str] = []
        final_result: Optional[str] = None
        last_output = initial_input

        for index, node_id in enumerate(order):
            node = graph.get_node(node_id)

            if node_id in reused:
                outputs[node_id] = reused[node_id].output or ""
                last_output = outputs[node_id]
                if node.type == NodeType.OUTPUT.value:
                    final_result = outputs[node_id]
                logger.info(f"Reusing completed step for node {node_id} of task {task_id}")
                continue

            signal = await control.poll()
            if signal.should_stop:
                logger.info(f"Task {task_id} {signal.status.value} before node {node_id}")
                await self._publish("publish_workflow_stopped", task_id, workflow_id, signal.status.value)
                return WorkflowRunResult(
                    completed=False,
                    status=signal.status,
                    result=last_output,
                    message=f"Workflow {signal.status.value}",
                    execution_order=order,
                    executed_nodes=executed,
                    skipped_nodes=skipped,
                )

            node_input = self._resolve_input(graph, node_id, index, outputs, initial_input)
            if signal.instruction is not None:
                node_input = f"{node_input}\n\n{settings.instruction_prefix} {signal.instruction.content}"
                await control.acknowledge(signal.instruction)
                logger.info(f"Applied instruction {signal.instruction.id} to node {node_id}")

            step = TaskStep(task_id=task_id, node_id=node_id, input=node_input,
                            created_at=datetime.utcnow())
            await self._save_step(step)
            await self._publish("publish_step_started", task_id, node_id, node.type)
            start_time = time.perf_counter()

            output, error = await self._execute_node(node, node_input, task_id, user_id)
            step.completed_at = datetime.utcnow()

            if error is not None:
                step.status = StepStatus.FAILED
                step.error = error
                await self._save_step(step)
                logger.error(f"Task {task_id} failed at node {node_id}: {error}")
                await self._finish_task(task_id, TaskStatus.FAILED, last_output)
                await self._publish("publish_workflow_failed", task_id, workflow_id, error, node_id)
                return WorkflowRunResult(
                    completed=False,
                    status=TaskStatus.FAILED,
                    result=last_output,
                    message="Workflow failed",
                    execution_order=order,
                    executed_nodes=executed,
                    skipped_nodes=skipped,
                    failed_node=node_id,
                )

            step.status = StepStatus.COMPLETED
            step.output = output
            await self._save_step(step)
            await self._publish("publish_step_completed", task_id, node_id,
                                time.perf_counter() - start_time)

            outputs[node_id] = output
            last_output = output
            executed.append(node_id)
            if node.type == NodeType.OUTPUT.value:
                final_result = output

        result = final_result if final_result is not None else NO_OUTPUT_NODE_RESULT
        await self._finish_task(task_id, TaskStatus.COMPLETED, result)
        await self._publish("publish_workflow_completed", task_id, workflow_id, len(executed))
        logger.info(f"Workflow execution for task {task_id} completed ({len(executed)} nodes)")

        return WorkflowRunResult(
            completed=True,
            status=TaskStatus.COMPLETED,
            result=result,
            execution_order=order,
            executed_nodes=executed,
            skipped_nodes=skipped,
        )

    def _resolve_input(self, graph: WorkflowGraph, node_id: str, index: int,
                       outputs: Dict[str, str], initial_input: str) -> str:
        """Original input for the first node, else the output of the predecessor whose first edge leads here."""
        if index == 0:
            return initial_input

        for edge in graph.incoming(node_id):
            first = graph.first_outgoing(edge.source)
            if first is not None and first.target == node_id and edge.source in outputs:
                return outputs[edge.source]

        logger.debug(f"Node {node_id} is not on a followed edge, using the workflow input")
        return initial_input

    async def _execute_node(self, node: WorkflowNode, node_input: str, task_id: str,
                            user_id: Optional[str]):
        """Return (output, error). error is set only when the run must stop."""
        if node.type == NodeType.AGENT.value:
            return await self._run_agent_node(node, node_input, task_id, user_id)
        if node.type in (NodeType.INPUT.value, NodeType.OUTPUT.value):
            return node_input, None

        logger.warning(f"Node {node.id} has unknown type {node.type}")
        return f"Error: unknown node type '{node.type}' for node {node.id}", None

    async def _run_agent_node(self, node: WorkflowNode, node_input: str, task_id: str,
                              user_id: Optional[str]):
        agent_type = node.data.agent_type
        if not agent_type:
            return f"Error: agent node {node.id} has no agent type", None

        try:
            agent = self.agent_registry.get(agent_type)
        except AgentConfigurationError as e:
            logger.warning(f"Node {node.id}: {str(e)}")
            return f"Error: {str(e)}", None

        agent = self._with_node_instructions(agent, node)
        try:
            result = await self.runner.run(agent, node_input, RunConfig(
                workflow_name=node.data.label or f"Workflow node {node.id}",
                group_id=task_id,
                owner_id=user_id,
                max_turns=settings.max_turns_per_node,
                trace_metadata={"task_id": task_id, "node_id": node.id},
            ))
        except UserError as e:
            return "", str(e)
        if not result.success:
            return "", result.error or "Agent run failed"
        return result.final_output, None

    def _with_node_instructions(self, agent: Agent, node: WorkflowNode) -> Agent:
        if not node.data.instructions:
            return agent
        if callable(agent.instructions):
            return agent.clone(instructions=node.data.instructions)
        return agent.clone(instructions=f"{agent.instructions}\n\n{node.data.instructions}".strip())

    async def _completed_steps(self, task_id: str) -> Dict[str, TaskStep]:
        steps = await self.store.list_task_steps(task_id)
        return {step.node_id: step for step in steps if step.status == StepStatus.COMPLETED}

    async def _save_step(self, step: TaskStep):
        try:
            if not await self.store.store_task_step(step):
                logger.warning(f"Step for node {step.node_id} of task {step.task_id} was not persisted")
        except Exception as e:
            logger.error(f"Failed to persist step for node {step.node_id}: {str(e)}")

    async def _finish_task(self, task_id: str, status: TaskStatus, result: Optional[str]):
        try:
            await self.store.update_task_status(task_id, status, result)
        except Exception as e:
            logger.error(f"Failed to update task {task_id} to {status.value}: {str(e)}")

    async def _publish(self, method: str, *args):
        if self.event_publisher is not None:
            await getattr(self.event_publisher, method)(*args)

    # Background execution

    async def run_task(self, workflow: Workflow, task: Task) -> WorkflowRunResult:
        try:
            return await self.execute(workflow.graph, task.input, task.id,
                                      workflow_id=workflow.id, user_id=task.user_id)
        except Exception as e:
            logger.error(f"Task {task.id} execution failed: {str(e)}")
            await self._finish_task(task.id, TaskStatus.FAILED, None)
            await self._publish("publish_workflow_failed", task.id, workflow.id, str(e))
            return WorkflowRunResult(completed=False, status=TaskStatus.FAILED, message=str(e))

    async def start_task_execution(self, workflow: Workflow, task: Task) -> asyncio.Task:
        """Start task execution in background.

        A task still running from before a pause keeps its single execution:
        the new one waits for it and only runs if it actually stopped paused.
        """
        previous = self.running_executions.get(task.id)
        if previous is not None and not previous.done():
            running = asyncio.create_task(self._resume_after(previous, workflow, task))
        else:
            running = asyncio.create_task(self.run_task(workflow, task))
        self.running_executions[task.id] = running
        return running

    async def _resume_after(self, previous: asyncio.Task, workflow: Workflow,
                            task: Task) -> WorkflowRunResult:
        result = await previous
        if result.status != TaskStatus.PAUSED:
            logger.info(f"Task {task.id} picked up the resume in its running execution")
            return result

        stored = await self.store.get_task(task.id)
        if stored is None or stored.status != TaskStatus.IN_PROGRESS:
            return result
        logger.info(f"Restarting task {task.id} after its execution stopped paused")
        return await self.run_task(workflow, task)

    def get_running_executions(self) -> List[str]:
        return [task_id for task_id, running in self.running_executions.items() if not running.done()]

    async def cleanup_completed_executions(self):
        completed = [task_id for task_id, running in self.running_executions.items() if running.done()]
        for task_id in completed:
            del self.running_executions[task_id]
        if completed:
            logger.info(f"Cleaned up {len(completed)} completed task executions")

    async def shutdown(self):
        for running in self.running_executions.values():
            running.cancel()
        for running in self.running_executions.values():
            try:
                await running
            except asyncio.CancelledError:
                pass
        self.running_executions.clear()
