"""Per-user request quotas for the assistant (per-minute and per-day windows).

State is in-memory and per process. Each window resets wholesale once it has
elapsed. Idle users are swept periodically to bound memory.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.core.config import settings

logger = logging.getLogger(__name__)

MINUTE_WINDOW = timedelta(minutes=1)
DAY_WINDOW = timedelta(days=1)
CLEANUP_INTERVAL = timedelta(minutes=5)
STALE_AFTER = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _UserRateState:
    minute_window_start: datetime
    day_window_start: datetime
    last_access: datetime
    minute_count: int = 0
    day_count: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class RateLimiter:
    def __init__(
        self,
        requests_per_minute: int | None = None,
        requests_per_day: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.requests_per_minute = (
            requests_per_minute if requests_per_minute is not None else settings.rate_limit_per_minute
        )
        self.requests_per_day = (
            requests_per_day if requests_per_day is not None else settings.rate_limit_per_day
        )
        self._clock = clock
        self._states: dict[str, _UserRateState] = {}
        self._last_cleanup = clock()

    def check_and_record(self, user_id: str) -> tuple[bool, str | None]:
        """Count one request for user_id if it fits both windows.

        Returns (allowed, message); message explains the rejection.
        """
        self._cleanup_stale_entries()

        now = self._clock()
        state = self._states.get(user_id)
        if state is None:
            # setdefault keeps the first state if two threads race on a new user
            state = self._states.setdefault(
                user_id,
                _UserRateState(minute_window_start=now, day_window_start=now, last_access=now),
            )

        with state.lock:
            if now - state.minute_window_start > MINUTE_WINDOW:
                state.minute_window_start = now
                state.minute_count = 0

            if now - state.day_window_start > DAY_WINDOW:
                state.day_window_start = now
                state.day_count = 0

            if state.minute_count >= self.requests_per_minute:
                logger.info(f"Minute rate limit hit for user {user_id}")
                return False, (
                    f"Rate limit exceeded. Maximum {self.requests_per_minute} requests per minute. "
                    "Please wait a moment."
                )

            if state.day_count >= self.requests_per_day:
                logger.info(f"Daily rate limit hit for user {user_id}")
                return False, (
                    f"Daily limit reached. Maximum {self.requests_per_day} requests per day. "
                    "Please try again tomorrow."
                )

            state.minute_count += 1
            state.day_count += 1
            state.last_access = now
            return True, None

    def tracked_users(self) -> int:
        return len(self._states)

    def _cleanup_stale_entries(self) -> None:
        now = self._clock()
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return

        self._last_cleanup = now
        threshold = now - STALE_AFTER
        removed = 0
        for user_id, state in list(self._states.items()):
            if state.last_access < threshold:
                self._states.pop(user_id, None)
                removed += 1
        if removed:
            logger.debug(f"Evicted {removed} idle rate limit entries")


rate_limiter = RateLimiter()
