# tasks.py - Task status and control endpoints
# This file defines the API endpoints for reading tasks and sending cancel, pause, resume and instruction actions.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List, Optional
import logging

from ..models import Task, TaskAction, TaskActionRequest, TaskDetail, TaskStatus
from ..task_control import TaskControl
from ..workflow_engine import WorkflowExecutor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"])

# Dependencies
def get_store(request: Request):
    return request.app.state.store

def get_executor(request: Request) -> WorkflowExecutor:
    return request.app.state.executor

@router.get("", response_model=List[Task])
async def list_tasks(
    user_id: Optional[str] = None,
    workflow_id: Optional[str] = None,
    limit: int = 50,
    store=Depends(get_store)
):
    try:
        tasks = await store.list_tasks(user_id=user_id, workflow_id=workflow_id)
        return tasks[:limit]

    except Exception as e:
        logger.error(f"Failed to list tasks: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{task_id}", response_model=TaskDetail)
async def get_task(task_id: str, store=Depends(get_store)):
    """Get a task with its steps in execution order."""
    try:
        task = await store.get_task(task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")

        return TaskDetail(
            task=task,
            steps=await store.list_task_steps(task_id),
            instructions=await store.list_instructions(task_id),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get task {task_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    request: TaskActionRequest,
    store=Depends(get_store),
    executor: WorkflowExecutor = Depends(get_executor)
):
    """Apply a control action to a task."""
    try:
        task = await store.get_task(task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")

        control = TaskControl(store, task_id)

        if request.action == TaskAction.INSTRUCTION:
            if not request.data or not request.data.strip():
                raise HTTPException(status_code=400, detail="Instruction content is required")
            instruction = await control.add_instruction(request.data)
            if instruction is None:
                raise HTTPException(status_code=500, detail="Failed to store instruction")
            return {"message": "Instruction queued", "instruction": instruction}

        if task.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot {request.action.value} task with status: {task.status.value}"
            )

        if request.action == TaskAction.CANCEL:
            await control.cancel()
        elif request.action == TaskAction.PAUSE:
            await control.pause()
        elif request.action == TaskAction.RESUME:
            if task.status != TaskStatus.PAUSED:
                raise HTTPException(status_code=400, detail="Only paused tasks can be resumed")
            await control.resume()
            workflow = await store.get_workflow(task.workflow_id) if task.workflow_id else None
            if not workflow:
                raise HTTPException(status_code=404, detail="Workflow for task not found")
            await executor.start_task_execution(workflow, task)

        return {"message": f"Task {task_id} {request.action.value} requested"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to update task {task_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
