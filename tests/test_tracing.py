from helpers import call, reply

from delegation_engine.agent_service.agent_types.agent import AgentBuilder, FunctionTool
from delegation_engine.agent_service.completion_client import ScriptedCompletionClient
from delegation_engine.agent_service.models import RunConfig, SpanType
from delegation_engine.agent_service.runner import TurnRunner
from delegation_engine.agent_service.tracing import (
    LoggingTraceProcessor, TraceProcessor, TraceRecorder, build_span_tree, trace_detail
)

class CollectingProcessor(TraceProcessor):
    def __init__(self):
        self.traces = []

    async def on_trace_end(self, trace):
        self.traces.append(trace)

class BrokenProcessor(TraceProcessor):
    async def on_trace_end(self, trace):
        raise ConnectionError("trace backend down")

async def test_recorder_builds_span_tree():
    collector = CollectingProcessor()
    recorder = TraceRecorder(processors=[collector], disabled=False)

    trace = recorder.start_trace("Support chat", group_id="conv-1", owner_id="user-1")
    agent_span = recorder.start_span(trace, SpanType.AGENT, "A", {"turn": 1})
    handoff_span = recorder.start_span(trace, SpanType.HANDOFF, "Handoff from A to B", parent=agent_span)
    recorder.end_span(handoff_span)
    recorder.end_span(agent_span, {"output": "x"})
    await recorder.end_trace(trace)

    assert trace.id.startswith("trace_")
    assert collector.traces == [trace]
    assert trace.ended_at is not None
    assert agent_span.data == {"turn": 1, "output": "x"}
    assert handoff_span.parent_id == agent_span.id

    tree = build_span_tree(trace.spans)
    assert len(tree) == 1
    assert tree[0].span.id == agent_span.id
    assert [child.span.name for child in tree[0].children] == ["Handoff from A to B"]

async def test_disabled_recorder_hands_out_inert_handles():
    collector = CollectingProcessor()
    recorder = TraceRecorder(processors=[collector], disabled=True)

    trace = recorder.start_trace("anything")
    span = recorder.start_span(trace, SpanType.AGENT, "A")
    recorder.end_span(span, {"x": 1})
    await recorder.end_trace(trace)

    assert trace is None
    assert span is None
    assert collector.traces == []

async def test_processor_failures_are_swallowed():
    collector = CollectingProcessor()
    recorder = TraceRecorder(processors=[BrokenProcessor(), LoggingTraceProcessor(), collector], disabled=False)

    trace = recorder.start_trace("run")
    await recorder.end_trace(trace)

    assert collector.traces == [trace]

async def test_runner_records_agent_handoff_and_function_spans(make_runner, store):
    lookup = FunctionTool(name="lookup", handler=lambda args: "42")
    b = AgentBuilder("B").build()
    a = AgentBuilder("A").add_tool(lookup).add_handoff(b).build()
    runner = make_runner([call("lookup", "{}"), call("handoff_to_b", '{"reason": "needs B"}'), reply("done")])

    result = await runner.run(a, "hi", RunConfig(workflow_name="Support", owner_id="u1"))

    trace = await store.get_trace(result.trace_id)
    assert trace.workflow_name == "Support"
    assert trace.owner_id == "u1"
    assert [(s.type, s.name) for s in trace.spans] == [
        (SpanType.AGENT, "A"),
        (SpanType.FUNCTION, "lookup"),
        (SpanType.AGENT, "A"),
        (SpanType.HANDOFF, "Handoff from A to B"),
        (SpanType.AGENT, "B"),
    ]
    handoff_span = trace.spans[3]
    assert handoff_span.parent_id == trace.spans[2].id
    assert handoff_span.data == {"source_agent": "A", "target_agent": "B", "reason": "needs B"}
    assert trace.spans[1].parent_id == trace.spans[0].id

    detail = trace_detail(trace)
    assert [node.span.name for node in detail.span_tree] == ["A", "A", "B"]

async def test_tracing_disabled_per_run(make_runner, store):
    runner = make_runner([reply("x")])

    result = await runner.run(AgentBuilder("A").build(), "hi", RunConfig(tracing_disabled=True))

    assert result.success
    assert result.trace_id is None
    assert await store.list_traces() == []

async def test_tracing_disabled_globally(store):
    runner = TurnRunner(client=ScriptedCompletionClient([reply("x")]),
                        tracer=TraceRecorder(disabled=True), store=store)

    result = await runner.run(AgentBuilder("A").build(), "hi")

    assert result.trace_id is None

async def test_sensitive_data_can_be_left_out(make_runner, store):
    runner = make_runner([reply("secret answer")])

    result = await runner.run(AgentBuilder("A").build(), "secret question",
                              RunConfig(trace_include_sensitive_data=False))

    span = (await store.get_trace(result.trace_id)).spans[0]
    assert "input" not in span.data
    assert "output" not in span.data

async def test_explicit_trace_id_is_used(make_runner, store):
    runner = make_runner([reply("x")])

    result = await runner.run(AgentBuilder("A").build(), "hi", RunConfig(trace_id="trace_custom"))

    assert result.trace_id == "trace_custom"
    assert await store.get_trace("trace_custom") is not None
