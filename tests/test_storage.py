from datetime import datetime, timedelta

import pytest

from delegation_engine.agent_service.config import Settings
from delegation_engine.agent_service.models import HandoffRecord, Trace
from delegation_engine.storage.factory import create_store
from delegation_engine.storage.memory import InMemoryStore
from delegation_engine.storage.redis_store import RedisStore
from delegation_engine.workflow_service.models import (
    StepStatus, Task, TaskInstruction, TaskStatus, TaskStep, Workflow, WorkflowGraph
)

class FakeRedis:
    """The subset of redis.Redis used by RedisStore, kept in dictionaries."""

    def __init__(self):
        self.values = {}
        self.sets = {}
        self.hashes = {}
        self.lists = {}
        self.zsets = {}

    def ping(self):
        return True

    def set(self, key, value):
        self.values[key] = value

    def get(self, key):
        return self.values.get(key)

    def delete(self, *keys):
        for key in keys:
            self.values.pop(key, None)

    def sadd(self, key, member):
        self.sets.setdefault(key, set()).add(member)

    def srem(self, key, member):
        self.sets.get(key, set()).discard(member)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)

    def zrevrange(self, key, start, end):
        ranked = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1], reverse=True)
        return [member for member, _ in ranked[start:end + 1]]

class BrokenRedis:
    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise ConnectionError("redis unavailable")
        return _fail

@pytest.fixture(params=["memory", "redis"])
def backend(request):
    if request.param == "memory":
        return InMemoryStore()
    return RedisStore(redis_client=FakeRedis())

async def test_workflow_round_trip_and_delete(backend):
    workflow = Workflow(name="Research", user_id="u1",
                        graph=WorkflowGraph(nodes=[{"id": "a", "type": "input"}]))

    assert await backend.store_workflow(workflow)
    loaded = await backend.get_workflow(workflow.id)
    assert loaded.name == "Research"
    assert loaded.graph.nodes[0].id == "a"
    assert [w.id for w in await backend.list_workflows("u1")] == [workflow.id]
    assert await backend.list_workflows("someone-else") == []

    assert await backend.delete_workflow(workflow.id)
    assert await backend.get_workflow(workflow.id) is None
    assert not await backend.delete_workflow(workflow.id)

async def test_task_status_update(backend):
    task = Task(workflow_id="wf-1", user_id="u1", input="topic")
    await backend.store_task(task)

    assert await backend.update_task_status(task.id, TaskStatus.COMPLETED, "answer")
    stored = await backend.get_task(task.id)
    assert stored.status == TaskStatus.COMPLETED
    assert stored.result == "answer"

    assert [t.id for t in await backend.list_tasks(workflow_id="wf-1")] == [task.id]
    assert await backend.list_tasks(workflow_id="wf-2") == []
    assert not await backend.update_task_status("missing", TaskStatus.FAILED)

async def test_steps_are_updated_in_place(backend):
    now = datetime.utcnow()
    first = TaskStep(task_id="t1", node_id="a", created_at=now)
    second = TaskStep(task_id="t1", node_id="b", created_at=now + timedelta(seconds=1))
    await backend.store_task_step(first)
    await backend.store_task_step(second)

    first.status = StepStatus.COMPLETED
    first.output = "done"
    await backend.store_task_step(first)

    steps = await backend.list_task_steps("t1")
    assert [s.node_id for s in steps] == ["a", "b"]
    assert steps[0].status == StepStatus.COMPLETED
    assert steps[0].output == "done"
    assert await backend.list_task_steps("t2") == []

async def test_instructions_pending_until_applied(backend):
    instruction = TaskInstruction(task_id="t1", content="shorter please")
    await backend.add_instruction(instruction)

    assert [i.content for i in await backend.get_pending_instructions("t1")] == ["shorter please"]
    assert await backend.mark_instruction_applied(instruction.id)
    assert await backend.get_pending_instructions("t1") == []
    assert (await backend.list_instructions("t1"))[0].applied
    assert not await backend.mark_instruction_applied("missing")

async def test_traces_listed_newest_first(backend):
    now = datetime.utcnow()
    old = Trace(workflow_name="old", owner_id="u1", started_at=now - timedelta(minutes=1))
    new = Trace(workflow_name="new", owner_id="u1", started_at=now)
    other = Trace(workflow_name="other", owner_id="u2", started_at=now)
    for trace in (old, new, other):
        await backend.store_trace(trace)

    assert [t.workflow_name for t in await backend.list_traces("u1")] == ["new", "old"]
    assert len(await backend.list_traces(limit=2)) == 2
    assert (await backend.get_trace(old.id)).workflow_name == "old"
    assert await backend.get_trace("trace_missing") is None

async def test_handoffs_grouped_by_trace(backend):
    await backend.store_handoff(HandoffRecord(trace_id="trace_1", from_agent="A", to_agent="B", reason="r"))
    await backend.store_handoff(HandoffRecord(trace_id="trace_1", from_agent="B", to_agent="C", reason="r"))
    await backend.store_handoff(HandoffRecord(trace_id="trace_2", from_agent="A", to_agent="C", reason="r"))

    assert [(h.from_agent, h.to_agent) for h in await backend.list_handoffs("trace_1")] == [("A", "B"), ("B", "C")]
    assert len(await backend.list_handoffs("trace_2")) == 1

async def test_memory_store_returns_copies():
    store = InMemoryStore()
    task = Task(input="topic")
    await store.store_task(task)

    loaded = await store.get_task(task.id)
    loaded.status = TaskStatus.CANCELLED

    assert (await store.get_task(task.id)).status == TaskStatus.IN_PROGRESS

async def test_redis_failures_are_reported_not_raised():
    store = RedisStore(redis_client=BrokenRedis())

    assert not store.ping()
    assert not await store.store_task(Task(input="x"))
    assert await store.get_task("t1") is None
    assert await store.list_task_steps("t1") == []
    assert await store.list_traces() == []

def test_factory_selects_backend():
    assert isinstance(create_store(Settings(storage_backend="memory")), InMemoryStore)
    assert isinstance(create_store(Settings(storage_backend="redis")), RedisStore)
    with pytest.raises(ValueError):
        create_store(Settings(storage_backend="sqlite"))
