"""Tests for MemoryHistoryStore: sessions, capacity eviction and locking."""

import asyncio
from datetime import timedelta

import pytest

from agentflow.schemas.history import HistoryEntry
from agentflow.storage import HistoryStoreError, InvalidSessionIDError, MemoryHistoryStore


def entry(n: int, success: bool = True) -> HistoryEntry:
    if success:
        return HistoryEntry.completed(input=f"in-{n}", output=f"out-{n}", run_id=f"run-{n}")
    return HistoryEntry.failed(input=f"in-{n}", error="boom", run_id=f"run-{n}")


class TestSessions:
    @pytest.mark.asyncio
    async def test_get_session_unknown_id_is_empty_and_not_stored(self):
        store = MemoryHistoryStore()

        session = await store.get_session("s1", workflow_id="wf", user_id="u1")

        assert session.session_id == "s1"
        assert session.workflow_id == "wf"
        assert session.user_id == "u1"
        assert session.count_runs() == 0
        assert await store.list_sessions() == []

    @pytest.mark.asyncio
    async def test_first_append_records_workflow_and_user(self):
        store = MemoryHistoryStore()

        await store.append_run("s1", entry(0), workflow_id="wf", user_id="u1")
        await store.append_run("s1", entry(1), workflow_id="other", user_id="u2")

        session = await store.get_session("s1")
        assert session.workflow_id == "wf"
        assert session.user_id == "u1"
        assert session.count_runs() == 2

    @pytest.mark.asyncio
    async def test_append_and_read_back(self):
        store = MemoryHistoryStore()

        for n in range(3):
            await store.append_run("s1", entry(n))

        session = await store.get_session("s1")
        assert [e.run_id for e in session.entries] == ["run-0", "run-1", "run-2"]

    @pytest.mark.asyncio
    async def test_returned_session_is_a_snapshot(self):
        store = MemoryHistoryStore()
        await store.append_run("s1", entry(0))

        session = await store.get_session("s1")
        session.add_entry(entry(99))

        assert (await store.get_session("s1")).count_runs() == 1

    @pytest.mark.asyncio
    async def test_empty_session_id_rejected(self):
        store = MemoryHistoryStore()

        with pytest.raises(InvalidSessionIDError):
            await store.get_session("")
        with pytest.raises(HistoryStoreError):
            await store.append_run("   ", entry(0))

    @pytest.mark.asyncio
    async def test_delete_session(self):
        store = MemoryHistoryStore()
        await store.append_run("s1", entry(0))

        assert await store.delete_session("s1") is True
        assert await store.delete_session("s1") is False
        assert store.total_runs == 0
        assert (await store.get_session("s1")).count_runs() == 0

    @pytest.mark.asyncio
    async def test_list_sessions_filters_and_pages(self):
        store = MemoryHistoryStore()
        await store.append_run("a", entry(0), workflow_id="wf-1")
        await asyncio.sleep(0.002)
        await store.append_run("b", entry(1), workflow_id="wf-2")
        await asyncio.sleep(0.002)
        await store.append_run("c", entry(2), workflow_id="wf-1")

        all_sessions = await store.list_sessions()
        assert [s.session_id for s in all_sessions] == ["c", "b", "a"]

        wf1 = await store.list_sessions(workflow_id="wf-1")
        assert [s.session_id for s in wf1] == ["c", "a"]

        page = await store.list_sessions(limit=1, offset=1)
        assert [s.session_id for s in page] == ["b"]


class TestCapacity:
    @pytest.mark.asyncio
    async def test_oldest_runs_evicted_across_sessions(self):
        store = MemoryHistoryStore(capacity=3)

        await store.append_run("a", entry(0))
        await store.append_run("b", entry(1))
        await store.append_run("a", entry(2))
        await store.append_run("b", entry(3))

        assert store.total_runs == 3
        a = await store.get_session("a")
        b = await store.get_session("b")
        assert [e.run_id for e in a.entries] == ["run-2"]
        assert [e.run_id for e in b.entries] == ["run-1", "run-3"]

    @pytest.mark.asyncio
    async def test_session_emptied_by_eviction_is_removed(self):
        store = MemoryHistoryStore(capacity=2)

        await store.append_run("old", entry(0))
        await store.append_run("new", entry(1))
        await store.append_run("new", entry(2))

        sessions = await store.list_sessions()
        assert [s.session_id for s in sessions] == ["new"]

    @pytest.mark.asyncio
    async def test_non_positive_capacity_is_unbounded(self):
        store = MemoryHistoryStore(capacity=0)

        for n in range(150):
            await store.append_run("s1", entry(n))

        assert store.total_runs == 150

    def test_capacity_from_configuration(self, tmp_path, monkeypatch):
        config_path = tmp_path / "configuration.json"
        config_path.write_text('{"workflow": {"history_capacity": 7}}')
        monkeypatch.setenv("AGENTFLOW_CONFIG", str(config_path))

        assert MemoryHistoryStore().capacity == 7


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_appends_to_one_session(self):
        store = MemoryHistoryStore(capacity=0)

        await asyncio.gather(*(store.append_run("s1", entry(n)) for n in range(50)))

        session = await store.get_session("s1")
        assert session.count_runs() == 50
        assert {e.run_id for e in session.entries} == {f"run-{n}" for n in range(50)}

    @pytest.mark.asyncio
    async def test_sessions_use_separate_locks(self):
        store = MemoryHistoryStore()

        async with store._session_lock("a"):
            assert store._session_locks["a"].locked()
            # Another session is not blocked while "a" is held
            await asyncio.wait_for(store.append_run("b", entry(0)), timeout=0.5)

        assert store._session_locks == {}

    @pytest.mark.asyncio
    async def test_lock_kept_while_a_task_waits_on_it(self):
        store = MemoryHistoryStore(capacity=0)
        await store.append_run("s1", entry(0))

        async with store._session_lock("s1"):
            lock = store._session_locks["s1"]
            delete = asyncio.create_task(store.delete_session("s1"))
            await asyncio.sleep(0)
            queued = asyncio.create_task(store.append_run("s1", entry(1)))
            await asyncio.sleep(0)

        assert await delete is True
        assert store._session_locks["s1"] is lock

        await asyncio.gather(queued, store.append_run("s1", entry(2)))

        session = await store.get_session("s1")
        assert [e.run_id for e in session.entries] == ["run-1", "run-2"]
        assert store._session_locks == {}
        assert store._lock_users == {}


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_clear_older_than(self):
        store = MemoryHistoryStore()
        await store.append_run("stale", entry(0))
        await store.append_run("fresh", entry(1))
        store._sessions["stale"].updated_at -= timedelta(days=2)

        removed = await store.clear(older_than=timedelta(days=1))

        assert removed == 1
        assert [s.session_id for s in await store.list_sessions()] == ["fresh"]

    @pytest.mark.asyncio
    async def test_stats(self):
        store = MemoryHistoryStore()
        await store.append_run("a", entry(0), workflow_id="wf")
        await store.append_run("a", entry(1, success=False), workflow_id="wf")
        await store.append_run("b", entry(2), workflow_id="other")

        stats = await store.stats(workflow_id="wf")

        assert stats.total_sessions == 1
        assert stats.total_runs == 2
        assert stats.successful_runs == 1
        assert stats.failed_runs == 1
        assert stats.success_rate == 0.5

    @pytest.mark.asyncio
    async def test_close_clears_everything(self):
        store = MemoryHistoryStore()
        await store.append_run("a", entry(0))

        await store.close()

        assert store.total_runs == 0
        assert await store.list_sessions() == []


class TestBoundedMemory:
    @pytest.mark.asyncio
    async def test_reading_unknown_sessions_retains_nothing(self):
        store = MemoryHistoryStore(capacity=2)

        for n in range(1000):
            await store.get_session(f"s{n}")

        assert store._sessions == {}
        assert store._session_locks == {}
        assert store.total_runs == 0

    @pytest.mark.asyncio
    async def test_evicted_sessions_release_their_locks(self):
        store = MemoryHistoryStore(capacity=2)

        for n in range(50):
            await store.append_run(f"s{n}", entry(n))

        assert sorted(store._sessions) == ["s48", "s49"]
        assert store._session_locks == {}


class TestUserSessions:
    @pytest.mark.asyncio
    async def test_list_user_sessions(self):
        store = MemoryHistoryStore()
        await store.append_run("a", entry(0), workflow_id="wf-1", user_id="alice")
        await asyncio.sleep(0.002)
        await store.append_run("b", entry(1), workflow_id="wf-1", user_id="bob")
        await asyncio.sleep(0.002)
        await store.append_run("c", entry(2), workflow_id="wf-2", user_id="alice")

        alice = await store.list_user_sessions("alice")
        assert [s.session_id for s in alice] == ["c", "a"]

        alice_wf1 = await store.list_sessions(workflow_id="wf-1", user_id="alice")
        assert [s.session_id for s in alice_wf1] == ["a"]

        assert await store.list_user_sessions("nobody") == []
