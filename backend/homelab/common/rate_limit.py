from __future__ import annotations

import threading
import time
from collections import defaultdict


class LoginRateLimiter:
    """In-process sliding window of failed login attempts keyed by IP and identifier."""

    def __init__(self) -> None:
        self._failures: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    @staticmethod
    def key_for(ip_address: str, identifier: str) -> str:
        return f"{ip_address}:{identifier.strip().lower()}"

    def _recent(self, key: str, window_seconds: int, now: float) -> list[float]:
        recent = [stamp for stamp in self._failures.get(key, []) if now - stamp <= window_seconds]
        if recent:
            self._failures[key] = recent
        else:
            self._failures.pop(key, None)
        return recent

    def is_blocked(self, key: str, window_seconds: int, max_attempts: int) -> bool:
        with self._lock:
            return len(self._recent(key, window_seconds, time.time())) >= max_attempts

    def retry_after(self, key: str, window_seconds: int) -> int:
        now = time.time()
        with self._lock:
            recent = self._recent(key, window_seconds, now)
            if not recent:
                return 0
            return max(1, int(window_seconds - (now - min(recent))))

    def add_failure(self, key: str) -> None:
        with self._lock:
            self._failures[key].append(time.time())

    def clear(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()


login_rate_limiter = LoginRateLimiter()
