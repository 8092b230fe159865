"""
Per-sender conversation state for the opt-in gate.

Tracks, for every WhatsApp sender:
- opt-in status (unset → awaiting consent → enabled / muted)
- mute expiry
- the last few message texts (FIFO, HISTORY_LIMIT entries)

Mutations for one sender are serialised with a per-sender lock; different
senders never wait on each other. When a repository is configured the state
is written through before upsert() returns.
"""
import asyncio
import time
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable
from wabot.bot_config import HISTORY_LIMIT
from wabot.errors import InvalidArgument
from wabot.history_repository import SenderStateRepository

logger = logging.getLogger("session_store")


class OptInStatus(str, Enum):
    UNSET = "unset"
    AWAITING_CONSENT = "awaiting_consent"
    ENABLED = "enabled"
    MUTED = "muted"


@dataclass
class SenderState:
    """Conversation state for a single sender."""
    identifier: str
    opt_in_status: OptInStatus = OptInStatus.UNSET
    mute_until: float | None = None
    history: list[str] = field(default_factory=list)
    last_seen: float = 0.0

    def append_history(self, text: str, limit: int = HISTORY_LIMIT):
        self.history.append(text)
        if len(self.history) > limit:
            del self.history[: len(self.history) - limit]

    def is_muted(self, now: float) -> bool:
        return (
            self.opt_in_status == OptInStatus.MUTED
            and self.mute_until is not None
            and self.mute_until > now
        )


class SessionStore:
    def __init__(
        self,
        repository: SenderStateRepository | None = None,
        idle_ttl: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._states: dict[str, SenderState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._repository = repository
        self._idle_ttl = idle_ttl
        self._clock = clock

    def _lock_for(self, identifier: str) -> asyncio.Lock:
        return self._locks.setdefault(identifier, asyncio.Lock())

    async def _load(self, identifier: str) -> SenderState | None:
        state = self._states.get(identifier)
        if state is not None or self._repository is None:
            return state

        row = await asyncio.to_thread(self._repository.load, identifier)
        if row is None:
            return None
        state = SenderState(
            identifier=identifier,
            opt_in_status=OptInStatus(row["opt_in_status"]),
            mute_until=row["mute_until"],
            history=row["history"][-HISTORY_LIMIT:],
            last_seen=self._clock(),
        )
        self._states[identifier] = state
        return state

    async def get(self, identifier: str) -> SenderState | None:
        """Current state for a sender, or None if it never wrote to us."""
        _validate(identifier)
        if self._repository is None and identifier not in self._locks:
            return self._states.get(identifier)
        async with self._lock_for(identifier):
            return await self._load(identifier)

    async def upsert(self, identifier: str, mutator: Callable[[SenderState], None]) -> SenderState:
        """
        Create the sender's state if needed, apply mutator, persist, return it.
        The mutator works on a copy; the cache only takes it once saved.
        """
        _validate(identifier)
        async with self._lock_for(identifier):
            current = await self._load(identifier)
            if current is None:
                state = SenderState(identifier=identifier)
                logger.info(f"New sender: {identifier}")
            else:
                state = replace(current, history=list(current.history))

            mutator(state)
            state.last_seen = self._clock()

            if self._repository is not None:
                await asyncio.to_thread(
                    self._repository.save,
                    identifier,
                    state.opt_in_status.value,
                    state.mute_until,
                    state.history,
                )
            self._states[identifier] = state
            return state

    async def append_history(self, identifier: str, text: str) -> SenderState:
        return await self.upsert(identifier, lambda s: s.append_history(text))

    def prune(self, now: float | None = None) -> int:
        """Drop cached senders idle longer than the TTL. Returns how many went."""
        if not self._idle_ttl:
            return 0
        now = self._clock() if now is None else now
        stale = [
            ident for ident, state in self._states.items()
            if now - state.last_seen > self._idle_ttl
            and not self._lock_for(ident).locked()
        ]
        for ident in stale:
            self._states.pop(ident, None)
            self._locks.pop(ident, None)
        orphans = [
            ident for ident, lock in self._locks.items()
            if ident not in self._states and not lock.locked()
        ]
        for ident in orphans:
            del self._locks[ident]
        if stale:
            logger.info(f"Pruned {len(stale)} idle sender(s)")
        return len(stale)

    def __len__(self) -> int:
        return len(self._states)


def _validate(identifier: str):
    if not identifier or not identifier.strip():
        raise InvalidArgument("Sender identifier must not be empty")
