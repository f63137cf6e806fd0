import time
from collections import deque
from typing import Callable, Deque, Dict

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """Sliding window limiter keyed by Discord user ID."""

    def __init__(
        self,
        limit: int = DEFAULT_LIMIT,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[int, Deque[float]] = {}

    def check(self, user_id: int) -> bool:
        now = self._clock()
        hits = self._hits.setdefault(user_id, deque())
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.limit:
            return False
        hits.append(now)
        return True

    def retry_after(self, user_id: int) -> float:
        hits = self._hits.get(user_id)
        if not hits or len(hits) < self.limit:
            return 0.0
        return max(0.0, self.window_seconds - (self._clock() - hits[0]))

    def cleanup(self) -> None:
        now = self._clock()
        for user_id in list(self._hits):
            hits = self._hits[user_id]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if not hits:
                del self._hits[user_id]
