# runner.py - Turn runner for handoff chains
# This file drives a conversation through agents, following handoff tool calls until a plain reply.

import inspect
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .agent_types.agent import Agent
from .agent_types.handoffs import HANDOFF_TOOL_PREFIX
from .completion_client import CompletionClient
from .config import settings
from .models import (
    CompletionResult, GuardrailResult, HandoffRecord, HistoryEntry, MessageRole, RunConfig,
    RunResult, SpanType, ToolCall, Unparsed
)
from .tracing import TraceRecorder

logger = logging.getLogger(__name__)

class UserError(ValueError):
    """Raised when the caller hands the runner something it cannot run."""

class StreamCallbacks:
    """Observers for a streamed run. Each callback may be sync or async."""

    def __init__(self,
                 on_start: Optional[Callable[[], Any]] = None,
                 on_token: Optional[Callable[[str], Any]] = None,
                 on_handoff: Optional[Callable[[str, str, str, Dict[str, Any]], Any]] = None,
                 on_error: Optional[Callable[[Exception], Any]] = None,
                 on_complete: Optional[Callable[[RunResult], Any]] = None):
        self.on_start = on_start
        self.on_token = on_token
        self.on_handoff = on_handoff
        self.on_error = on_error
        self.on_complete = on_complete

async def _emit(callback: Optional[Callable[..., Any]], *args):
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Stream callback {getattr(callback, '__name__', callback)} failed: {str(e)}")

async def _apply_guardrails(guardrails, text: str, results: List[GuardrailResult]) -> str:
    """Pass text through each guardrail in order, recording what each one changed."""
    for guardrail in guardrails:
        processed = guardrail(text)
        if inspect.isawaitable(processed):
            processed = await processed
        processed = str(processed)
        results.append(GuardrailResult(
            guardrail=getattr(guardrail, "__name__", "unnamed_guardrail"),
            original=text,
            processed=processed,
        ))
        text = processed
    return text

class TurnRunner:
    def __init__(self, client: CompletionClient,
                 tracer: Optional[TraceRecorder] = None,
                 store=None,
                 default_max_turns: Optional[int] = None):
        self.client = client
        self.tracer = tracer or TraceRecorder()
        self.store = store
        if default_max_turns is None:
            default_max_turns = settings.default_max_turns
        if default_max_turns <= 0:
            raise ValueError(f"default_max_turns must be positive, got {default_max_turns}")
        self.default_max_turns = default_max_turns

    async def run(self, agent: Agent, message: str,
                  run_config: Optional[RunConfig] = None,
                  history: Optional[List[HistoryEntry]] = None) -> RunResult:
        """Run to completion and return the final result."""
        return await self._run(agent, message, run_config or RunConfig(), history, None)

    async def run_streamed(self, agent: Agent, message: str,
                           callbacks: Optional[StreamCallbacks] = None,
                           run_config: Optional[RunConfig] = None,
                           history: Optional[List[HistoryEntry]] = None) -> RunResult:
        """Run with incremental delivery through callbacks.

        Produces the same final text and handoff path as run() for the same
        sequence of model responses.
        """
        return await self._run(agent, message, run_config or RunConfig(), history,
                               callbacks or StreamCallbacks())

    async def _run(self, agent: Agent, message: str, config: RunConfig,
                   history: Optional[List[HistoryEntry]],
                   callbacks: Optional[StreamCallbacks]) -> RunResult:
        if not message or not message.strip():
            raise UserError("Empty message provided. Please provide a valid message.")

        streaming = callbacks is not None
        start_time = time.perf_counter()
        max_turns = config.max_turns if config.max_turns is not None else self.default_max_turns
        include_sensitive = config.trace_include_sensitive_data
        if include_sensitive is None:
            include_sensitive = settings.trace_include_sensitive_data

        current = agent
        history = list(history or [])
        pending: List[HistoryEntry] = []
        handoff_path = [agent.name]
        handoffs: List[HandoffRecord] = []
        turns = 0
        last_text = ""
        final_output = ""
        max_turns_exceeded = False
        input_results: List[GuardrailResult] = []
        output_results: List[GuardrailResult] = []

        trace = self.tracer.start_trace(
            workflow_name=config.workflow_name or settings.default_workflow_name,
            trace_id=config.trace_id,
            group_id=config.group_id,
            owner_id=config.owner_id,
            metadata=config.trace_metadata,
            disabled=config.tracing_disabled,
        )
        trace_id = trace.id if trace else None

        if streaming:
            await _emit(callbacks.on_start)

        try:
            message = await _apply_guardrails(config.input_guardrails, message, input_results)

            while True:
                turns += 1
                context = {"agent": current, "handoff_path": list(handoff_path), "run_config": config}
                system_prompt = await current.get_system_prompt(context)
                messages = (
                    [HistoryEntry(role=MessageRole.SYSTEM, content=system_prompt)]
                    + history
                    + [HistoryEntry(role=MessageRole.USER, content=message)]
                    + pending
                )
                model = config.model or current.model or settings.default_model
                model_settings = current.model_settings.resolve(config.model_settings)
                tools = current.tool_schemas()

                span_data: Dict[str, Any] = {"model": model, "turn": turns, "tools": current.tool_names()}
                if include_sensitive:
                    span_data["input"] = message
                agent_span = self.tracer.start_span(trace, SpanType.AGENT, current.name, span_data)

                try:
                    if streaming:
                        response = await self._stream_hop(callbacks, model, messages, tools, model_settings)
                    else:
                        response = await self.client.complete(model, messages, tools, model_settings)
                except Exception as e:
                    self.tracer.end_span(agent_span, {"error": str(e)})
                    raise

                if response.text:
                    last_text = response.text
                result_data: Dict[str, Any] = {}
                if response.tool_call is not None:
                    result_data["tool_call"] = response.tool_call.name
                if include_sensitive:
                    result_data["output"] = response.text
                self.tracer.end_span(agent_span, result_data)

                tool_call = response.tool_call
                if tool_call is None:
                    final_output = response.text
                    break

                handoff = current.find_handoff(tool_call.name)
                if handoff is not None:
                    parsed = handoff.parse_arguments(tool_call.arguments)
                    if isinstance(parsed, Unparsed):
                        logger.warning(
                            f"Ignoring handoff {tool_call.name} from {current.name}: {parsed.error}"
                        )
                        final_output = response.text
                        break

                    data = dict(parsed.data)
                    reason = str(data.pop("reason", None) or "No reason provided")
                    target = handoff.agent
                    handoff_span = self.tracer.start_span(
                        trace, SpanType.HANDOFF, f"Handoff from {current.name} to {target.name}",
                        {"source_agent": current.name, "target_agent": target.name, "reason": reason},
                        parent=agent_span,
                    )
                    logger.info(f"Handing off from {current.name} to {target.name}: {reason}")

                    if streaming:
                        await _emit(callbacks.on_handoff, current.name, target.name, reason, data)
                    try:
                        await handoff.notify(context, {"reason": reason, **data})
                    except Exception as e:
                        logger.error(f"on_handoff callback for {target.name} failed: {str(e)}")

                    history = handoff.filter_history(history, config.handoff_input_filter)
                    if streaming:
                        history.append(HistoryEntry(
                            role=MessageRole.ASSISTANT,
                            content=f"Handing off from {current.name} to {target.name}...",
                        ))

                    record = HandoffRecord(trace_id=trace_id, from_agent=current.name,
                                           to_agent=target.name, reason=reason, data=data)
                    handoffs.append(record)
                    await self._record_handoff(record)
                    self.tracer.end_span(handoff_span)

                    current = target
                    pending = []
                    handoff_path.append(target.name)
                else:
                    tool = current.find_tool(tool_call.name)
                    if tool is None:
                        final_output = self._unresolved_tool_output(current, tool_call, response)
                        logger.warning(final_output)
                        break

                    function_span = self.tracer.start_span(
                        trace, SpanType.FUNCTION, tool.name,
                        {"arguments": tool_call.arguments} if include_sensitive else {},
                        parent=agent_span,
                    )
                    output = await tool.invoke(tool_call.arguments)
                    self.tracer.end_span(function_span, {"output": output} if include_sensitive else None)
                    pending.append(HistoryEntry(role=MessageRole.ASSISTANT, content=response.text,
                                                tool_call=tool_call))
                    pending.append(HistoryEntry(role=MessageRole.TOOL, content=output,
                                                name=tool.name, tool_call_id=tool_call.id))

                if turns >= max_turns:
                    logger.warning(
                        f"Run reached max turns ({max_turns}) at agent {current.name}, "
                        f"returning the latest response"
                    )
                    max_turns_exceeded = True
                    final_output = last_text
                    break

            final_output = await _apply_guardrails(config.output_guardrails, final_output, output_results)

        except Exception as e:
            logger.error(f"Run failed at agent {current.name} after {turns} turns: {str(e)}")
            await self.tracer.end_trace(trace)
            result = RunResult(
                success=False,
                handoff_path=handoff_path,
                handoffs=handoffs,
                last_agent=current.name,
                turns=turns,
                execution_time_ms=(time.perf_counter() - start_time) * 1000,
                trace_id=trace_id,
                error=str(e),
                history=history,
                input_guardrail_results=input_results,
                output_guardrail_results=output_results,
            )
            if streaming:
                await _emit(callbacks.on_error, e)
            return result

        history = history + [HistoryEntry(role=MessageRole.USER, content=message)] + pending
        history.append(HistoryEntry(role=MessageRole.ASSISTANT, content=final_output))
        await self.tracer.end_trace(trace)

        result = RunResult(
            success=True,
            final_output=final_output,
            handoff_path=handoff_path,
            handoffs=handoffs,
            last_agent=current.name,
            turns=turns,
            max_turns_exceeded=max_turns_exceeded,
            execution_time_ms=(time.perf_counter() - start_time) * 1000,
            trace_id=trace_id,
            history=history,
            structured_output=current.parse_output(final_output),
            input_guardrail_results=input_results,
            output_guardrail_results=output_results,
        )
        if streaming:
            await _emit(callbacks.on_complete, result)
        return result

    async def _stream_hop(self, callbacks: StreamCallbacks, model, messages, tools,
                          model_settings) -> CompletionResult:
        """Consume one streamed response, assembling any tool call from its deltas."""
        text_parts: List[str] = []
        call_id: Optional[str] = None
        call_name: Optional[str] = None
        argument_parts: List[str] = []

        async for chunk in self.client.stream(model, messages, tools, model_settings):
            if chunk.text:
                text_parts.append(chunk.text)
                await _emit(callbacks.on_token, chunk.text)

            delta = chunk.tool_call_delta
            if delta is None or delta.index != 0:
                continue
            if delta.id:
                call_id = delta.id
            if delta.name:
                call_name = delta.name
            argument_parts.append(delta.arguments)

        tool_call = None
        if call_name:
            tool_call = ToolCall(name=call_name, arguments="".join(argument_parts))
            if call_id:
                tool_call.id = call_id
        return CompletionResult(text="".join(text_parts), tool_call=tool_call)

    def _unresolved_tool_output(self, agent: Agent, tool_call: ToolCall,
                                response: CompletionResult) -> str:
        if tool_call.name.startswith(HANDOFF_TOOL_PREFIX):
            error = f"Error: agent {agent.name} has no handoff target for tool '{tool_call.name}'"
        else:
            error = f"Error: agent {agent.name} has no tool named '{tool_call.name}'"
        return f"{response.text}\n\n{error}".strip()

    async def _record_handoff(self, record: HandoffRecord):
        if self.store is None:
            return
        try:
            await self.store.store_handoff(record)
        except Exception as e:
            logger.error(f"Failed to persist handoff {record.from_agent} -> {record.to_agent}: {str(e)}")
