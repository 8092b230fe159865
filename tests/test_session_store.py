"""
Tests for the per-sender session store: bounded history, per-sender
serialisation, repository write-through and idle pruning.
"""

import asyncio
import threading
import time

import pytest

from wabot.errors import InvalidArgument
from wabot.history_repository import SenderStateRepository
from wabot.session_store import OptInStatus, SenderState, SessionStore


class SlowRepository:
    """In-memory repository whose calls take long enough to interleave."""

    def __init__(self):
        self.rows = {}

    def load(self, identifier):
        time.sleep(0.05)
        row = self.rows.get(identifier)
        return dict(row, history=list(row["history"])) if row else None

    def save(self, identifier, opt_in_status, mute_until, history):
        time.sleep(0.01)
        self.rows[identifier] = {
            "identifier": identifier,
            "opt_in_status": opt_in_status,
            "mute_until": mute_until,
            "history": list(history),
        }


class GatedRepository:
    """Blocks loads for one sender until the gate opens."""

    def __init__(self, blocked: str):
        self.blocked = blocked
        self.gate = threading.Event()

    def load(self, identifier):
        if identifier == self.blocked:
            self.gate.wait(timeout=5)
        return None

    def save(self, identifier, opt_in_status, mute_until, history):
        pass


class FailingSaveRepository:
    """Accepts the first `ok_saves` writes, then rejects every save."""

    def __init__(self, ok_saves: int = 1):
        self.ok_saves = ok_saves
        self.rows = {}

    def load(self, identifier):
        return None

    def save(self, identifier, opt_in_status, mute_until, history):
        if self.ok_saves <= 0:
            raise RuntimeError("database is locked")
        self.ok_saves -= 1
        self.rows[identifier] = (opt_in_status, list(history))


class TestSenderState:

    def test_history_is_capped_fifo(self):
        state = SenderState(identifier="a@s.whatsapp.net")
        for i in range(6):
            state.append_history(f"m{i}")

        assert len(state.history) == 5
        assert "m0" not in state.history
        assert state.history[-1] == "m5"

    def test_is_muted_only_until_expiry(self):
        state = SenderState(
            identifier="a@s.whatsapp.net",
            opt_in_status=OptInStatus.MUTED,
            mute_until=1000.0,
        )
        assert state.is_muted(999.0) is True
        assert state.is_muted(1000.0) is False


class TestSessionStore:

    @pytest.mark.asyncio
    async def test_get_unknown_sender_returns_none(self, store):
        assert await store.get("new@s.whatsapp.net") is None

    @pytest.mark.asyncio
    async def test_upsert_creates_unset_state(self, store):
        state = await store.upsert("a@s.whatsapp.net", lambda s: None)

        assert state.identifier == "a@s.whatsapp.net"
        assert state.opt_in_status == OptInStatus.UNSET
        assert await store.get("a@s.whatsapp.net") is state
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_six_appends_keep_five(self, store):
        for i in range(6):
            await store.append_history("a@s.whatsapp.net", f"msg {i}")

        state = await store.get("a@s.whatsapp.net")
        assert len(state.history) == 5
        assert "msg 0" not in state.history
        assert "msg 5" in state.history

    @pytest.mark.asyncio
    async def test_empty_identifier_rejected(self, store):
        with pytest.raises(InvalidArgument):
            await store.get("")
        with pytest.raises(InvalidArgument):
            await store.upsert("   ", lambda s: None)
        with pytest.raises(InvalidArgument):
            await store.append_history("", "hi")

    @pytest.mark.asyncio
    async def test_concurrent_appends_for_same_sender_are_not_lost(self, clock):
        store = SessionStore(repository=SlowRepository(), clock=clock)

        await asyncio.gather(
            store.append_history("a@s.whatsapp.net", "first"),
            store.append_history("a@s.whatsapp.net", "second"),
        )

        state = await store.get("a@s.whatsapp.net")
        assert len(state.history) == 2
        assert set(state.history) == {"first", "second"}

    @pytest.mark.asyncio
    async def test_distinct_senders_do_not_block_each_other(self, clock):
        repo = GatedRepository(blocked="a@s.whatsapp.net")
        store = SessionStore(repository=repo, clock=clock)

        slow = asyncio.create_task(store.append_history("a@s.whatsapp.net", "x"))
        await asyncio.sleep(0.01)

        state_b = await asyncio.wait_for(store.append_history("b@s.whatsapp.net", "y"), timeout=2)
        assert state_b.history == ["y"]
        assert not slow.done()

        repo.gate.set()
        state_a = await slow
        assert state_a.history == ["x"]

    @pytest.mark.asyncio
    async def test_state_survives_a_new_store(self, session_factory, clock):
        repo = SenderStateRepository(session_factory)
        first = SessionStore(repository=repo, clock=clock)

        def enable(state):
            state.opt_in_status = OptInStatus.ENABLED
            state.append_history("hello")

        await first.upsert("a@s.whatsapp.net", enable)

        second = SessionStore(repository=repo, clock=clock)
        state = await second.get("a@s.whatsapp.net")
        assert state.opt_in_status == OptInStatus.ENABLED
        assert state.history == ["hello"]

    @pytest.mark.asyncio
    async def test_prune_drops_idle_senders_only(self, clock):
        store = SessionStore(idle_ttl=60, clock=clock)
        await store.append_history("old@s.whatsapp.net", "a")
        clock.advance(120)
        await store.append_history("fresh@s.whatsapp.net", "b")

        assert store.prune() == 1
        assert await store.get("old@s.whatsapp.net") is None
        assert await store.get("fresh@s.whatsapp.net") is not None

    def test_prune_without_ttl_is_noop(self, store):
        assert store.prune() == 0

    @pytest.mark.asyncio
    async def test_failed_save_leaves_cached_state_untouched(self, clock):
        store = SessionStore(repository=FailingSaveRepository(ok_saves=1), clock=clock)
        await store.upsert("a@s.whatsapp.net", lambda s: s.append_history("hello"))

        def enable(state):
            state.opt_in_status = OptInStatus.ENABLED
            state.append_history("yes")

        with pytest.raises(RuntimeError):
            await store.upsert("a@s.whatsapp.net", enable)

        state = await store.get("a@s.whatsapp.net")
        assert state.opt_in_status == OptInStatus.UNSET
        assert state.history == ["hello"]

    @pytest.mark.asyncio
    async def test_failed_first_save_does_not_cache_new_sender(self, clock):
        store = SessionStore(repository=FailingSaveRepository(ok_saves=0), clock=clock)

        with pytest.raises(RuntimeError):
            await store.append_history("a@s.whatsapp.net", "hello")

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_lookups_of_unknown_senders_do_not_accumulate_locks(self, clock):
        store = SessionStore(idle_ttl=60, clock=clock)
        for i in range(50):
            assert await store.get(f"{i}@s.whatsapp.net") is None
        await store.append_history("known@s.whatsapp.net", "hi")

        store.prune()

        assert set(store._locks) <= {"known@s.whatsapp.net"}
