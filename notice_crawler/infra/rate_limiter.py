"""
Minimum-interval limiter keyed by host, shared by every fetch in a run.
"""
from __future__ import annotations

import asyncio
import time
from typing import Dict


class RateLimiter:
    def __init__(self, min_interval: float = 0.0) -> None:
        self.min_interval = min_interval
        self._last_hit: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def wait(self, key: str) -> None:
        if self.min_interval <= 0:
            return
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            now = time.monotonic()
            last = self._last_hit.get(key)
            if last is not None and now - last < self.min_interval:
                await asyncio.sleep(self.min_interval - (now - last))
            self._last_hit[key] = time.monotonic()
