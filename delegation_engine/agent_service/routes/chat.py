# chat.py - Direct chat endpoints
# This file defines the blocking and streaming chat endpoints backed by the turn runner.

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..agent_registry import AgentRegistry
from ..agent_types.agent import Agent, AgentConfigurationError
from ..models import ChatRequest, ChatResponse, RunConfig, RunResult
from ..runner import StreamCallbacks, TurnRunner

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])

GENERIC_ERROR_MESSAGE = "Sorry, something went wrong while processing your request. Please try again."

# Dependencies
def get_runner(request: Request) -> TurnRunner:
    return request.app.state.runner

def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry

def _resolve_agent(registry: AgentRegistry, agent_type: str) -> Agent:
    try:
        return registry.get(agent_type)
    except AgentConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))

def _run_config(chat_request: ChatRequest) -> RunConfig:
    return RunConfig(
        workflow_name=chat_request.workflow_name,
        group_id=chat_request.group_id,
        owner_id=chat_request.user_id,
        max_turns=chat_request.max_turns,
        tracing_disabled=chat_request.tracing_disabled,
    )

def _to_response(result: RunResult) -> ChatResponse:
    return ChatResponse(
        success=result.success,
        message=result.final_output if result.success else GENERIC_ERROR_MESSAGE,
        agent=result.last_agent,
        handoff_path=result.handoff_path,
        handoffs=result.handoffs,
        execution_time_ms=result.execution_time_ms,
        trace_id=result.trace_id,
        max_turns_exceeded=result.max_turns_exceeded,
        error=result.error,
    )

def _sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"

@router.post("", response_model=ChatResponse)
async def chat(
    chat_request: ChatRequest,
    runner: TurnRunner = Depends(get_runner),
    registry: AgentRegistry = Depends(get_agent_registry)
):
    """Run a message through the agent chain and return the final reply."""
    agent = _resolve_agent(registry, chat_request.agent_type)
    try:
        result = await runner.run(agent, chat_request.message, _run_config(chat_request),
                                  history=chat_request.history)
        return _to_response(result)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Chat request failed: {str(e)}")
        raise HTTPException(status_code=500, detail=GENERIC_ERROR_MESSAGE)

@router.post("/stream")
async def chat_stream(
    chat_request: ChatRequest,
    runner: TurnRunner = Depends(get_runner),
    registry: AgentRegistry = Depends(get_agent_registry)
):
    """Stream a run as server-sent events: start, token, handoff, error and complete."""
    agent = _resolve_agent(registry, chat_request.agent_type)
    queue: "asyncio.Queue[Optional[Tuple[str, Dict[str, Any]]]]" = asyncio.Queue()

    def on_handoff(from_agent: str, to_agent: str, reason: str, data: Dict[str, Any]):
        queue.put_nowait(("handoff", {"from": from_agent, "to": to_agent, "reason": reason, "data": data}))

    def on_error(error: Exception):
        logger.error(f"Streaming chat failed: {str(error)}")
        queue.put_nowait(("error", {"message": GENERIC_ERROR_MESSAGE}))

    def on_complete(result: RunResult):
        queue.put_nowait(("complete", _to_response(result).model_dump(mode="json")))

    callbacks = StreamCallbacks(
        on_start=lambda: queue.put_nowait(("start", {"agent": agent.name})),
        on_token=lambda text: queue.put_nowait(("token", {"text": text})),
        on_handoff=on_handoff,
        on_error=on_error,
        on_complete=on_complete,
    )

    async def event_stream():
        run = asyncio.create_task(runner.run_streamed(
            agent, chat_request.message, callbacks, _run_config(chat_request),
            history=chat_request.history
        ))
        run.add_done_callback(lambda _: queue.put_nowait(None))

        while True:
            item = await queue.get()
            if item is None:
                break
            event, data = item
            yield _sse(event, data)

        if run.exception() is not None:
            logger.error(f"Streaming run raised: {str(run.exception())}")
            yield _sse("error", {"message": GENERIC_ERROR_MESSAGE})

    return StreamingResponse(event_stream(), media_type="text/event-stream")
