import pytest
from pydantic import BaseModel

from helpers import call, reply

from delegation_engine.agent_service.agent_types.agent import AgentBuilder, FunctionTool
from delegation_engine.agent_service.agent_types.handoffs import keep_only_last_user_message
from delegation_engine.agent_service.models import (
    HistoryEntry, MessageRole, RunConfig, Structured
)
from delegation_engine.agent_service.runner import UserError

def _chain():
    """A hands off to B, B hands off to C."""
    c = AgentBuilder("C", instructions="You are C").build()
    b = AgentBuilder("B", instructions="You are B").add_handoff(c).build()
    a = AgentBuilder("A", instructions="You are A").add_handoff(b).build()
    return a, b, c

async def test_single_agent_direct_reply(make_runner):
    agent = AgentBuilder("Helper", instructions="Be nice").build()
    runner = make_runner([reply("hi there")])

    result = await runner.run(agent, "hello")

    assert result.success
    assert result.final_output == "hi there"
    assert result.handoff_path == ["Helper"]
    assert result.handoffs == []
    assert result.turns == 1
    assert result.last_agent == "Helper"
    assert [e.role for e in result.history] == [MessageRole.USER, MessageRole.ASSISTANT]

    sent = runner.client.calls[0]["messages"]
    assert sent[0].role == MessageRole.SYSTEM
    assert sent[0].content == "Be nice"
    assert sent[-1].content == "hello"

async def test_handoff_switches_agent(make_runner, store):
    a, b, _ = _chain()
    runner = make_runner([call("handoff_to_b", '{"reason": "needs B"}'), reply("done")])

    result = await runner.run(a, "please help")

    assert result.success
    assert result.final_output == "done"
    assert result.handoff_path == ["A", "B"]
    assert len(result.handoffs) == 1
    record = result.handoffs[0]
    assert (record.from_agent, record.to_agent, record.reason) == ("A", "B", "needs B")

    # second hop used B's instructions and B's tools
    second = runner.client.calls[1]
    assert second["messages"][0].content == "You are B"
    assert [t["function"]["name"] for t in second["tools"]] == ["handoff_to_c"]

    assert [r.to_agent for r in await store.list_handoffs(result.trace_id)] == ["B"]

async def test_handoff_chain_is_bounded_by_max_turns(make_runner):
    a, _, _ = _chain()
    runner = make_runner([
        call("handoff_to_b", '{"reason": "go"}', text="passing to B"),
        call("handoff_to_c", '{"reason": "go"}'),
        reply("never reached"),
    ])

    result = await runner.run(a, "hi", RunConfig(max_turns=2))

    assert result.success
    assert result.max_turns_exceeded
    assert result.final_output == "passing to B"
    assert result.handoff_path == ["A", "B", "C"]
    assert len(runner.client.calls) == 2

async def test_endless_tool_calls_terminate(make_runner):
    noop = FunctionTool(name="noop", handler=lambda args: "ok")
    agent = AgentBuilder("Looper").add_tool(noop).build()
    runner = make_runner(responder=lambda messages, tools: call("noop", "{}", text="still going"))

    result = await runner.run(agent, "loop forever", RunConfig(max_turns=4))

    assert result.max_turns_exceeded
    assert result.final_output == "still going"
    assert len(runner.client.calls) <= 4 + 1

async def test_default_max_turns_is_ten(make_runner):
    noop = FunctionTool(name="noop", handler=lambda args: "ok")
    agent = AgentBuilder("Looper").add_tool(noop).build()
    runner = make_runner(responder=lambda messages, tools: call("noop", "{}"))

    result = await runner.run(agent, "loop")

    assert result.max_turns_exceeded
    assert len(runner.client.calls) == 10

async def test_malformed_handoff_arguments_skip_the_handoff(make_runner):
    a, _, _ = _chain()
    runner = make_runner([call("handoff_to_b", "{not json", text="Let me think")])

    result = await runner.run(a, "hi")

    assert result.success
    assert result.final_output == "Let me think"
    assert result.handoff_path == ["A"]
    assert result.handoffs == []

async def test_unresolvable_handoff_target_becomes_output(make_runner):
    a, _, _ = _chain()
    runner = make_runner([call("handoff_to_z", '{"reason": "?"}')])

    result = await runner.run(a, "hi")

    assert result.success
    assert "no handoff target for tool 'handoff_to_z'" in result.final_output
    assert result.handoff_path == ["A"]

async def test_function_tool_result_is_sent_back(make_runner):
    lookup = FunctionTool(name="lookup", handler=lambda args: f"weather in {args['city']}: sunny")
    agent = AgentBuilder("Weather").add_tool(lookup).build()
    runner = make_runner([call("lookup", '{"city": "Oslo"}'), reply("It is sunny in Oslo")])

    result = await runner.run(agent, "weather?")

    assert result.final_output == "It is sunny in Oslo"
    assert result.turns == 2
    second_messages = runner.client.calls[1]["messages"]
    assert second_messages[-2].tool_call.name == "lookup"
    assert second_messages[-1].role == MessageRole.TOOL
    assert second_messages[-1].content == "weather in Oslo: sunny"

async def test_completion_failure_returns_failure_result(make_runner):
    a, _, _ = _chain()
    runner = make_runner([call("handoff_to_b", '{"reason": "x"}'), RuntimeError("model unavailable")])

    result = await runner.run(a, "hi")

    assert not result.success
    assert result.error == "model unavailable"
    assert result.final_output == ""
    assert result.handoff_path == ["A", "B"]
    assert result.last_agent == "B"

async def test_history_filter_and_on_handoff_callback(make_runner):
    seen = []

    async def on_handoff(context, data):
        seen.append((context["agent"].name, data))

    b = AgentBuilder("B").build()
    a = AgentBuilder("A").add_handoff(b, input_filter=keep_only_last_user_message,
                                      on_handoff=on_handoff).build()
    history = [
        HistoryEntry(role=MessageRole.USER, content="earlier question"),
        HistoryEntry(role=MessageRole.ASSISTANT, content="earlier answer"),
        HistoryEntry(role=MessageRole.USER, content="follow up"),
    ]
    runner = make_runner([call("handoff_to_b", '{"reason": "specialist"}'), reply("ok")])

    result = await runner.run(a, "now", history=history)

    assert seen == [("A", {"reason": "specialist"})]
    b_messages = runner.client.calls[1]["messages"]
    assert [m.content for m in b_messages[1:]] == ["follow up", "now"]
    assert [e.content for e in result.to_input_list()] == ["follow up", "now", "ok"]

async def test_run_config_overrides_model(make_runner):
    agent = AgentBuilder("A", model="small-model").build()
    runner = make_runner([reply("x"), reply("y")])

    await runner.run(agent, "hi")
    await runner.run(agent, "hi", RunConfig(model="big-model"))

    assert [c["model"] for c in runner.client.calls] == ["small-model", "big-model"]

class Summary(BaseModel):
    title: str

async def test_structured_output_is_parsed(make_runner):
    agent = AgentBuilder("Summarizer", output_model=Summary).build()
    runner = make_runner([reply('{"title": "Report"}')])

    result = await runner.run(agent, "summarize")

    assert isinstance(result.structured_output, Structured)
    assert result.structured_output.data == {"title": "Report"}

async def test_empty_message_is_rejected(make_runner):
    agent = AgentBuilder("Helper").build()
    runner = make_runner([reply("unused")])

    for message in ("", "   "):
        with pytest.raises(UserError):
            await runner.run(agent, message)

    assert runner.client.calls == []

def redact(text):
    return text.replace("secret", "[redacted]")

async def shout(text):
    return text.upper()

async def test_guardrails_transform_input_and_output(make_runner):
    agent = AgentBuilder("Helper").build()
    runner = make_runner([reply("here is the secret")])

    result = await runner.run(agent, "tell me the secret", RunConfig(
        input_guardrails=[redact],
        output_guardrails=[redact, shout],
    ))

    assert runner.client.calls[0]["messages"][-1].content == "tell me the [redacted]"
    assert result.final_output == "HERE IS THE [REDACTED]"
    assert [(r.guardrail, r.original, r.processed) for r in result.input_guardrail_results] == [
        ("redact", "tell me the secret", "tell me the [redacted]"),
    ]
    assert [r.guardrail for r in result.output_guardrail_results] == ["redact", "shout"]
    assert result.output_guardrail_results[1].original == "here is the [redacted]"

async def test_failing_guardrail_returns_failure_result(make_runner):
    def reject(text):
        raise ValueError("blocked by policy")

    agent = AgentBuilder("Helper").build()
    runner = make_runner([reply("unused")])

    result = await runner.run(agent, "hi", RunConfig(input_guardrails=[reject]))

    assert not result.success
    assert result.error == "blocked by policy"
    assert result.input_guardrail_results == []
    assert runner.client.calls == []

def test_default_max_turns_must_be_positive(make_runner):
    with pytest.raises(ValueError):
        make_runner([], default_max_turns=0)

async def test_default_max_turns_from_constructor(make_runner):
    noop = FunctionTool(name="noop", handler=lambda args: "ok")
    agent = AgentBuilder("Looper").add_tool(noop).build()
    runner = make_runner(responder=lambda messages, tools: call("noop", "{}"), default_max_turns=2)

    result = await runner.run(agent, "loop")

    assert result.max_turns_exceeded
    assert len(runner.client.calls) == 2
