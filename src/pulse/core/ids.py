from __future__ import annotations

import hashlib
import json
from typing import Any, Protocol

ID_TEMPLATE = "xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx"


class NibbleSource(Protocol):
    def nibble(self) -> int: ...


class ClockLike(Protocol):
    def now(self) -> int: ...


def canonical_json(obj: Any) -> str:
    # stable serialization for hashing
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def stable_fraction(text: str) -> float:
    """
    Map a string to a deterministic value in [0, 1).
    """
    h = hashlib.sha1(text.encode("utf-8")).hexdigest()
    return int(h[:8], 16) / float(1 << 32)


def deterministic_run_id_from_config(cfg_raw: dict[str, Any], length: int = 12) -> str:
    """
    Deterministic run_id derived from the full config content.
    Same YAML content, same run_id.
    """
    s = canonical_json(cfg_raw).encode("utf-8")
    return hashlib.sha1(s).hexdigest()[:length]


class IdGenerator:
    """
    Opaque ids: a random 36-char token with a fixed version nibble,
    suffixed with the hex creation timestamp (ms) for coarse ordering.

      3f1c2a9e-0b7d-4e21-9a3c-5d8e7f6a1b2c-19b6e3f4a10
    """

    def __init__(self, *, rng: NibbleSource, clock: ClockLike) -> None:
        self._rng = rng
        self._clock = clock

    def new_id(self) -> str:
        chars: list[str] = []
        for c in ID_TEMPLATE:
            if c == "x":
                chars.append(format(self._rng.nibble(), "x"))
            elif c == "y":
                chars.append(format((self._rng.nibble() & 0x3) | 0x8, "x"))
            else:
                chars.append(c)
        return "".join(chars) + "-" + format(int(self._clock.now()), "x")
