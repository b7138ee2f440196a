from __future__ import annotations

from typing import Protocol

USER_ID_KEY = "pulse_uid"


class Storage(Protocol):
    """Durable key-value capability. Either method may raise."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...


class IdsLike(Protocol):
    def new_id(self) -> str: ...
