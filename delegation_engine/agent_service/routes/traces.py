# traces.py - Trace query endpoints
# This file defines the endpoints for listing traces and reading one trace with its span tree.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List, Optional
import logging

from ..models import HandoffRecord, Trace, TraceDetail
from ..tracing import trace_detail

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/traces", tags=["traces"])

# Dependencies
def get_store(request: Request):
    return request.app.state.store

@router.get("", response_model=List[Trace])
async def list_traces(
    owner_id: Optional[str] = None,
    limit: int = 50,
    store=Depends(get_store)
):
    """List traces, newest first."""
    try:
        return await store.list_traces(owner_id=owner_id, limit=limit)

    except Exception as e:
        logger.error(f"Failed to list traces: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{trace_id}", response_model=TraceDetail)
async def get_trace(trace_id: str, store=Depends(get_store)):
    """Get a trace with its spans nested by parent."""
    try:
        trace = await store.get_trace(trace_id)
        if not trace:
            raise HTTPException(status_code=404, detail="Trace not found")

        return trace_detail(trace)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get trace {trace_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{trace_id}/handoffs", response_model=List[HandoffRecord])
async def get_trace_handoffs(trace_id: str, store=Depends(get_store)):
    """Handoff records written during a traced run."""
    try:
        return await store.list_handoffs(trace_id)

    except Exception as e:
        logger.error(f"Failed to list handoffs for trace {trace_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
