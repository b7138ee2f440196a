from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunContext:
    run_id: str
    seed: int
    start_ms: int
