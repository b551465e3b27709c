import os
import sys
from pathlib import Path

os.environ.setdefault("AGENT_SERVICE_STORAGE_BACKEND", "memory")
os.environ.setdefault("WORKFLOW_SERVICE_STORAGE_BACKEND", "memory")
os.environ.setdefault("AGENT_SERVICE_TRACING_DISABLED", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
for path in (ROOT, ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from delegation_engine.agent_service.agent_registry import AgentRegistry  # noqa: E402
from delegation_engine.agent_service.completion_client import ScriptedCompletionClient  # noqa: E402
from delegation_engine.agent_service.runner import TurnRunner  # noqa: E402
from delegation_engine.agent_service.tracing import StoreTraceProcessor, TraceRecorder  # noqa: E402
from delegation_engine.storage.memory import InMemoryStore  # noqa: E402

@pytest.fixture
def store():
    return InMemoryStore()

@pytest.fixture
def tracer(store):
    return TraceRecorder(processors=[StoreTraceProcessor(store)], disabled=False)

@pytest.fixture
def make_runner(store, tracer):
    """Build a runner over a scripted client: make_runner([responses]) or make_runner(responder=fn)."""
    def _make(responses=None, responder=None, **kwargs):
        client = ScriptedCompletionClient(responses=responses, responder=responder)
        return TurnRunner(client=client, tracer=tracer, store=store, **kwargs)
    return _make

@pytest.fixture
def registry():
    return AgentRegistry()
