# runtime.py - Runner wiring
# This file assembles the agent registry, tracer and turn runner used by both services.

import logging
from typing import Optional

from .agent_bootstrap import register_default_agents
from .agent_registry import AgentRegistry
from .completion_client import CompletionClient, OpenAICompletionClient
from .runner import TurnRunner
from .tracing import LoggingTraceProcessor, StoreTraceProcessor, TraceRecorder

logger = logging.getLogger(__name__)

def build_agent_registry() -> AgentRegistry:
    return register_default_agents(AgentRegistry())

def build_tracer(store=None, disabled: Optional[bool] = None) -> TraceRecorder:
    processors = [LoggingTraceProcessor()]
    if store is not None:
        processors.append(StoreTraceProcessor(store))
    return TraceRecorder(processors=processors, disabled=disabled)

def build_runner(store=None, client: Optional[CompletionClient] = None,
                 tracer: Optional[TraceRecorder] = None) -> TurnRunner:
    """Runner persisting traces and handoff records through store."""
    if client is None:
        client = OpenAICompletionClient()
    return TurnRunner(client=client, tracer=tracer or build_tracer(store), store=store)
