from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Optional


class FrameRateMeter:
    """Rolling frames-per-second estimate over the last ``window`` frame arrivals."""

    def __init__(self, window: int = 30, clock: Callable[[], float] = time.perf_counter) -> None:
        self.window = max(2, window)
        self.clock = clock
        self.arrivals: Deque[float] = deque(maxlen=self.window)

    def tick(self, now: Optional[float] = None) -> float:
        self.arrivals.append(self.clock() if now is None else now)
        return self.get_fps()

    def get_fps(self) -> float:
        if len(self.arrivals) < 2:
            return 0.0
        span = self.arrivals[-1] - self.arrivals[0]
        if span <= 0:
            return 0.0
        return float((len(self.arrivals) - 1) / span)

    def reset(self) -> None:
        self.arrivals.clear()
