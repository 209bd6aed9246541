"""
Request guard: short-window deduplication and per-user serialization.

Both are single-process, in-memory structures. RecentJobStore is an
interface so a shared store can replace the in-memory one without
touching call sites.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

from shirokuma.agents.schemas import DiagnosisRequest

DEFAULT_DEDUP_TTL_SECONDS = 120.0


def make_job_key(user_id: str, request: DiagnosisRequest) -> str:
    """Composite key of user, diagnosis type and birth data."""
    parts = [
        user_id,
        request.diagnosis_type.value,
        request.birth_date.isoformat(),
        request.mbti,
    ]
    if request.partner is not None:
        parts.extend([request.partner.birth_date.isoformat(), request.partner.mbti])
    return ":".join(parts)


def sweep_expired(entries: dict[str, float], now: float, ttl: float) -> dict[str, float]:
    """Return the entries (key -> first-seen time) still inside the TTL window."""
    return {key: seen_at for key, seen_at in entries.items() if now - seen_at < ttl}


class RecentJobStore:
    """Interface for the recent-jobs dedup set."""

    def seen_recently(self, key: str, now: Optional[float] = None) -> bool:
        """Return True if key was seen inside the window; otherwise record it and return False."""
        raise NotImplementedError

    def forget(self, key: str) -> None:
        """Drop key so the same request is accepted again."""
        raise NotImplementedError


class InMemoryRecentJobStore(RecentJobStore):
    def __init__(self, ttl_seconds: float = DEFAULT_DEDUP_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}

    def seen_recently(self, key: str, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        # Sweep on access
        self._entries = sweep_expired(self._entries, now, self.ttl_seconds)
        if key in self._entries:
            return True
        self._entries[key] = now
        return False

    def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class UserLockRegistry:
    """
    Per-user job chain: a job for a user starts only after the previous one finishes.

    The entry for a user is removed once its last queued job completes.
    """

    def __init__(self):
        self._tails: dict[str, asyncio.Future] = {}

    async def run(self, user_id: str, job: Callable[[], Awaitable[Any]]) -> Any:
        previous = self._tails.get(user_id)
        done = asyncio.get_running_loop().create_future()
        self._tails[user_id] = done
        try:
            if previous is not None:
                # shield: a cancelled waiter must not cancel the previous job's marker
                await asyncio.shield(previous)
            return await job()
        finally:
            if previous is not None and not previous.done():
                # Cancelled while waiting: the next job still waits for the one ahead
                previous.add_done_callback(lambda _: self._release(user_id, done))
            else:
                self._release(user_id, done)

    def _release(self, user_id: str, done: asyncio.Future) -> None:
        if not done.done():
            done.set_result(None)
        if self._tails.get(user_id) is done:
            del self._tails[user_id]

    def is_busy(self, user_id: str) -> bool:
        return user_id in self._tails

    def __len__(self) -> int:
        return len(self._tails)
