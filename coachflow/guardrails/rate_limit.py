import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List

from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter, in-memory and per process, keyed by client IP.
    Upload and processing requests kick off expensive AI calls, so each IP gets max_requests per window."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.storage: Dict[str, List[float]] = defaultdict(list)  # ip -> [timestamps]
        self._lock = threading.Lock()

    def check(self, request: Request) -> None:
        """Raise 429 if the client is over the limit; otherwise record the request."""
        now = self.clock()
        ip = request.client.host if request.client else "unknown"

        with self._lock:
            recent = [t for t in self.storage[ip] if now - t < self.window_seconds]
            if len(recent) >= self.max_requests:
                self.storage[ip] = recent
                raise HTTPException(
                    status_code=429,
                    detail="Rate limit exceeded. Please retry later.",
                )
            recent.append(now)
            self.storage[ip] = recent
