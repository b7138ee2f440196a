from __future__ import annotations

import time

import simpy


class SimClock:
    """
    Millisecond clock driven by a SimPy environment.
    env.now is seconds since engine start.
    """

    def __init__(self, env: simpy.Environment, epoch_ms: int) -> None:
        self.env = env
        self.epoch_ms = int(epoch_ms)

    def now(self) -> int:
        return self.epoch_ms + int(round(float(self.env.now) * 1000.0))


class WallClock:
    def now(self) -> int:
        return time.time_ns() // 1_000_000


def ms_to_s(ms: float) -> float:
    return float(ms) / 1000.0
