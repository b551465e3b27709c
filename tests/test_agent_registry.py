import threading

import pytest

from helpers import call, reply

from delegation_engine.agent_service.agent_bootstrap import register_default_agents
from delegation_engine.agent_service.agent_types.agent import AgentBuilder, AgentConfigurationError

def test_factory_runs_once(registry):
    builds = []

    def factory(reg):
        builds.append(1)
        return AgentBuilder("Solo").build()

    registry.register_factory("solo", factory)

    assert registry.get("solo") is registry.get("solo")
    assert builds == [1]

def test_concurrent_first_lookups_build_once(registry):
    builds = []
    start = threading.Barrier(8)

    def factory(reg):
        builds.append(1)
        return AgentBuilder("Shared").build()

    registry.register_factory("shared", factory)
    seen = []

    def lookup():
        start.wait()
        seen.append(registry.get("shared"))

    threads = [threading.Thread(target=lookup) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert builds == [1]
    assert all(agent is seen[0] for agent in seen)

def test_unknown_type(registry):
    with pytest.raises(AgentConfigurationError, match="Unknown agent type: ghost"):
        registry.get("ghost")
    assert not registry.has("ghost")

def test_clear_rebuilds_from_factories(registry):
    registry.register_factory("solo", lambda reg: AgentBuilder("Solo").build())
    registry.register("fixed", AgentBuilder("Fixed").build())
    first = registry.get("solo")

    registry.clear()

    assert registry.get("solo") is not first
    assert registry.get("fixed").name == "Fixed"
    assert registry.list_agent_types() == ["fixed", "solo"]

def test_default_agents(registry):
    register_default_agents(registry)

    assert registry.list_agent_types() == ["delegation", "report", "research", "triage"]

    delegation = registry.get("delegation")
    assert delegation.name == "DelegationAgent"
    assert delegation.tool_names() == ["handoff_to_triageagent", "handoff_to_researchagent", "format_as_report"]
    assert delegation.find_handoff("format_as_report").agent_name == "ReportAgent"

    triage = registry.get("triage")
    assert triage.tool_names() == ["classify_query", "handoff_to_researchagent", "handoff_to_reportagent"]
    research_handoff = triage.find_handoff("handoff_to_researchagent")
    assert "topic" in research_handoff.input_schema["properties"]

    # handoff targets are the registry's own instances
    assert delegation.find_handoff("handoff_to_researchagent").agent is registry.get("research")

async def test_delegation_to_research_scenario(registry, make_runner):
    register_default_agents(registry)
    runner = make_runner([
        call("handoff_to_researchagent", '{"reason": "factual question"}'),
        reply("Paris is the capital of France [source: atlas]"),
    ])

    result = await runner.run(registry.get("delegation"), "What is the capital of France?")

    assert result.handoff_path == ["DelegationAgent", "ResearchAgent"]
    assert result.final_output.startswith("Paris")
    assert result.handoffs[0].reason == "factual question"

async def test_triage_classifies_then_hands_off(registry, make_runner):
    register_default_agents(registry)
    classification = '{"task_type": "research", "confidence": 0.9, "reasoning": "facts"}'
    runner = make_runner([
        call("classify_query", classification),
        call("handoff_to_researchagent", '{"reason": "research task", "topic": "solar panels"}'),
        reply("Solar panel findings"),
    ])

    result = await runner.run(registry.get("triage"), "Tell me about solar panels")

    assert result.handoff_path == ["TriageAgent", "ResearchAgent"]
    assert result.handoffs[0].data["topic"] == "solar panels"
    tool_reply = runner.client.calls[1]["messages"][-1]
    assert '"task_type": "research"' in tool_reply.content
