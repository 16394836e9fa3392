"""In-memory cache of channel membership."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)

RosterFetcher = Callable[[str], Awaitable[Iterable[str]]]


@dataclass(frozen=True)
class _Entry:
    members: FrozenSet[str]
    fetched_at: float


class RosterCache:
    """Roster store with an optional time-to-live and one lock per channel.

    Rosters are fetched on first use and replaced wholesale, so readers only
    ever see complete member lists. A failed fetch leaves the previous entry
    (if any) untouched and propagates the error. A slow fetch for one channel
    never holds up reads of another channel or of ``size``.
    """

    def __init__(
        self,
        fetch: RosterFetcher,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self._ttl = ttl.total_seconds() if ttl is not None else None
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._entries: Dict[str, _Entry] = {}

    async def get(self, channel_id: str) -> FrozenSet[str]:
        async with self._lock_for(channel_id):
            entry = self._entries.get(channel_id)
            if entry is not None and not self._expired(entry):
                return entry.members
            return await self._refresh_locked(channel_id)

    async def refresh(self, channel_id: str) -> FrozenSet[str]:
        async with self._lock_for(channel_id):
            return await self._refresh_locked(channel_id)

    async def invalidate(self, channel_id: Optional[str] = None) -> None:
        if channel_id is None:
            self._entries.clear()
            return
        # waits out an in-flight fetch so it cannot resurrect the entry
        async with self._lock_for(channel_id):
            self._entries.pop(channel_id, None)

    def size(self) -> int:
        """Number of members across every cached channel."""

        return sum(len(entry.members) for entry in self._entries.values())

    def _lock_for(self, channel_id: str) -> asyncio.Lock:
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = self._locks[channel_id] = asyncio.Lock()
        return lock

    async def _refresh_locked(self, channel_id: str) -> FrozenSet[str]:
        """Assumes caller holds the channel's lock."""

        members = frozenset(await self._fetch(channel_id))
        self._entries[channel_id] = _Entry(members=members, fetched_at=self._clock())
        logger.info("Cached roster for channel %s (%d members)", channel_id, len(members))
        return members

    def _expired(self, entry: _Entry) -> bool:
        if self._ttl is None:
            return False
        return self._clock() - entry.fetched_at >= self._ttl
