from __future__ import annotations

import logging

from pulse.core.errors import StorageUnavailable
from pulse.core.logging import get_logger

from .types import USER_ID_KEY, IdsLike, Storage


class MemoryStorage:
    """In-process store. Lives as long as the object does."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class UnavailableStorage:
    """A store that is present but refuses every access (blocked, quota, private mode)."""

    def get(self, key: str) -> str | None:
        raise StorageUnavailable(f"storage unavailable (get {key!r})")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailable(f"storage unavailable (set {key!r})")


class IdentityResolver:
    """
    User id: read from durable storage, else generated and persisted.
    If the store is missing or fails, an ephemeral id is used for the engine's
    lifetime and never written back. Resolution happens once and is cached.

    Session ids are always fresh.
    """

    def __init__(
        self,
        *,
        ids: IdsLike,
        storage: Storage | None,
        key: str = USER_ID_KEY,
        logger: logging.Logger | None = None,
    ) -> None:
        self._ids = ids
        self._storage = storage
        self._key = key
        self._logger = logger or get_logger(__name__)

        self._user_id: str | None = None
        self._ephemeral = False

    @property
    def is_ephemeral(self) -> bool:
        return self._ephemeral

    def resolve_user_id(self) -> str:
        if self._user_id is not None:
            return self._user_id

        try:
            self._user_id = self._load_or_create()
        except Exception as e:  # noqa: BLE001 - any store fault degrades to ephemeral
            self._logger.warning(
                "identity storage unavailable, using ephemeral user id",
                extra={"reason": type(e).__name__},
            )
            self._ephemeral = True
            self._user_id = self._ids.new_id()

        return self._user_id

    def new_session_id(self) -> str:
        return self._ids.new_id()

    def _load_or_create(self) -> str:
        if self._storage is None:
            raise StorageUnavailable("no durable storage configured")

        stored = self._storage.get(self._key)
        if stored:
            return stored

        new_id = self._ids.new_id()
        self._storage.set(self._key, new_id)
        return new_id
