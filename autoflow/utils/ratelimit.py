from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque


class RateLimiter:
    """Sliding-window limiter: at most ``max_calls`` starts per ``period`` seconds."""

    def __init__(self, max_calls: int, period: float = 1.0) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.period = period
        self._starts: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            while True:
                now = loop.time()
                while self._starts and now - self._starts[0] >= self.period:
                    self._starts.popleft()
                if len(self._starts) < self.max_calls:
                    self._starts.append(now)
                    return
                await asyncio.sleep(self.period - (now - self._starts[0]))
