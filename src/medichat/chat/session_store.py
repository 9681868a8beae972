"""
Session Store — in-process rolling context window per user.

Holds the most recent ``limit`` messages (default 10, i.e. 5 exchanges) for
each user, oldest first. Lives from app startup to shutdown; nothing here is
durable — the turn log in the database is the source of truth.

Callers that read, compute and then append must hold the user's turn for
the whole span, otherwise two concurrent turns for one user can drop or
reorder entries:

    async with store.turn(user_id):
        history = store.get(user_id)
        reply = await generate(text, history)
        store.append(user_id, [...])

With ``max_sessions`` set, least-recently-used users are evicted once the
map grows past the bound. Users with a turn running or waiting are skipped.
A user's lock is dropped once their last turn ends and they have no
history.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from medichat.chat.models import ChatMessage

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, limit: int = 10, max_sessions: int = 0):
        if limit < 1:
            raise ValueError("history limit must be >= 1")
        self.limit = limit
        self.max_sessions = max_sessions
        self._histories: OrderedDict[str, tuple[ChatMessage, ...]] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}
        self._active: dict[str, int] = {}  # turns running or waiting, per user

    def __len__(self) -> int:
        return len(self._histories)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._histories

    def lock(self, user_id: str) -> asyncio.Lock:
        """Per-user mutex. asyncio.Lock wakes waiters in FIFO order."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def turn(self, user_id: str) -> AsyncIterator[None]:
        """Hold the user's lock for one turn, in arrival order."""
        lock = self.lock(user_id)
        self._active[user_id] = self._active.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._active[user_id] - 1
            if remaining:
                self._active[user_id] = remaining
            else:
                del self._active[user_id]
                if user_id not in self._histories:
                    self._locks.pop(user_id, None)

    def is_busy(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return user_id in self._active or (lock is not None and lock.locked())

    def get(self, user_id: str) -> tuple[ChatMessage, ...]:
        """Current history, oldest first. Empty for unknown users."""
        history = self._histories.get(user_id)
        if history is None:
            return ()
        self._histories.move_to_end(user_id)
        return history

    def append(self, user_id: str, entries: Iterable[ChatMessage]) -> None:
        """Add entries and trim from the front to ``limit``."""
        combined = self._histories.get(user_id, ()) + tuple(entries)
        self._histories[user_id] = combined[-self.limit :]
        self._histories.move_to_end(user_id)
        self._evict(keep=user_id)

    def clear(self, user_id: str) -> None:
        self._histories.pop(user_id, None)
        if not self.is_busy(user_id):
            self._locks.pop(user_id, None)

    def _evict(self, keep: str) -> None:
        if not self.max_sessions:
            return
        overflow = len(self._histories) - self.max_sessions
        if overflow <= 0:
            return
        for user_id in list(self._histories):
            if overflow <= 0:
                break
            if user_id == keep or self.is_busy(user_id):
                continue
            del self._histories[user_id]
            self._locks.pop(user_id, None)
            overflow -= 1
            logger.debug("Evicted idle session", extra={"user_id": user_id})
