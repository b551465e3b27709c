# workflows.py - Workflow definition endpoints
# This file defines the API endpoints for creating, listing, deleting and executing workflows.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List, Optional
import logging

from ..models import (
    GraphValidationError, Task, Workflow, WorkflowCreateRequest,
    WorkflowExecuteRequest, WorkflowExecuteResponse
)
from ..workflow_engine import WorkflowExecutor

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/workflows", tags=["workflows"])

# Dependencies
def get_store(request: Request):
    return request.app.state.store

def get_executor(request: Request) -> WorkflowExecutor:
    return request.app.state.executor

@router.post("", response_model=Workflow)
async def create_workflow(request: WorkflowCreateRequest, store=Depends(get_store)):
    """Create a workflow after validating its graph."""
    try:
        request.graph.check_predecessors()

        workflow = Workflow(
            user_id=request.user_id,
            name=request.name,
            description=request.description,
            graph=request.graph,
        )
        if not await store.store_workflow(workflow):
            raise HTTPException(status_code=500, detail="Failed to store workflow")

        logger.info(f"Created workflow {workflow.id} ({workflow.name})")
        return workflow

    except GraphValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to create workflow: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("", response_model=List[Workflow])
async def list_workflows(user_id: Optional[str] = None, store=Depends(get_store)):
    try:
        return await store.list_workflows(user_id=user_id)

    except Exception as e:
        logger.error(f"Failed to list workflows: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{workflow_id}", response_model=Workflow)
async def get_workflow(workflow_id: str, store=Depends(get_store)):
    try:
        workflow = await store.get_workflow(workflow_id)
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")
        return workflow

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get workflow {workflow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.delete("/{workflow_id}")
async def delete_workflow(workflow_id: str, store=Depends(get_store)):
    try:
        if not await store.delete_workflow(workflow_id):
            raise HTTPException(status_code=404, detail="Workflow not found")
        return {"message": f"Workflow {workflow_id} deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete workflow {workflow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/{workflow_id}/execute", response_model=WorkflowExecuteResponse)
async def execute_workflow(
    workflow_id: str,
    request: WorkflowExecuteRequest,
    store=Depends(get_store),
    executor: WorkflowExecutor = Depends(get_executor)
):
    """Create a task for the workflow and run it, in the background unless wait is set."""
    try:
        workflow = await store.get_workflow(workflow_id)
        if not workflow:
            raise HTTPException(status_code=404, detail="Workflow not found")

        task = Task(workflow_id=workflow.id, user_id=request.user_id or workflow.user_id,
                    input=request.input)
        if not await store.store_task(task):
            raise HTTPException(status_code=500, detail="Failed to create task")

        if request.wait:
            run = await executor.run_task(workflow, task)
            return WorkflowExecuteResponse(task=await store.get_task(task.id) or task, run=run)

        await executor.start_task_execution(workflow, task)
        logger.info(f"Started task {task.id} for workflow {workflow.id}")
        return WorkflowExecuteResponse(task=task)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to execute workflow {workflow_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
