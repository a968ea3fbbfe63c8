"""
Cooperative yielding for long loops running on the event loop
"""

import asyncio
import time
from typing import Optional

# Phases that run outside of a request coroutine and must never suspend
NON_YIELDABLE_PHASES = frozenset({"init", "init_worker", "log", "header_filter", "body_filter"})

YIELD_ITERATIONS = 1000


class CooperativeYielder:
    """
    Hands control back to the event loop from inside long iterations

    Called with ``in_loop=True`` it only switches every ``iterations``
    calls, or as soon as ``max_slice_ms`` has elapsed since the last
    switch when a slice is configured.
    """

    def __init__(self, iterations: int = YIELD_ITERATIONS, max_slice_ms: Optional[float] = None):
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        self.iterations = iterations
        self.max_slice_ms = max_slice_ms
        self._counter = iterations
        self._last_switch = time.monotonic()
        self.switches = 0

    @staticmethod
    def is_yieldable(phase: Optional[str]) -> bool:
        return phase not in NON_YIELDABLE_PHASES

    def _slice_exhausted(self) -> bool:
        if self.max_slice_ms is None:
            return False
        return (time.monotonic() - self._last_switch) * 1000 >= self.max_slice_ms

    async def __call__(self, in_loop: bool = False, phase: Optional[str] = None) -> None:
        if not self.is_yieldable(phase):
            return

        if in_loop:
            self._counter -= 1
            if self._counter > 0 and not self._slice_exhausted():
                return
            self._counter = self.iterations

        await asyncio.sleep(0)
        self._last_switch = time.monotonic()
        self.switches += 1
