from __future__ import annotations

import re

from pulse.core.ids import IdGenerator
from pulse.core.rng import RNG
from pulse.features.identity.service import IdentityResolver, MemoryStorage, UnavailableStorage
from pulse.features.identity.types import USER_ID_KEY

ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}-[0-9a-f]+$")


class FixedClock:
    def __init__(self, now_ms: int) -> None:
        self.now_ms = now_ms

    def now(self) -> int:
        return self.now_ms


class FlakyStorage:
    """get works, set fails."""

    def __init__(self) -> None:
        self.set_calls = 0

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        self.set_calls += 1
        raise OSError("quota exceeded")


def make_ids(seed: int = 1, now_ms: int = 1_767_225_600_000) -> IdGenerator:
    return IdGenerator(rng=RNG(seed), clock=FixedClock(now_ms))


def test_id_format_has_version_nibble_and_hex_timestamp():
    new_id = make_ids(now_ms=0x19B6E3F4A10).new_id()
    assert ID_RE.match(new_id)
    assert len(new_id.rsplit("-", 1)[0]) == 36
    assert new_id.endswith("-19b6e3f4a10")


def test_ids_are_deterministic_per_seed_and_distinct_per_call():
    a = make_ids(seed=7)
    b = make_ids(seed=7)
    assert a.new_id() == b.new_id()
    assert a.new_id() != a.new_id()


def test_user_id_is_created_and_persisted():
    storage = MemoryStorage()
    resolver = IdentityResolver(ids=make_ids(), storage=storage)

    user_id = resolver.resolve_user_id()

    assert storage.data[USER_ID_KEY] == user_id
    assert resolver.is_ephemeral is False


def test_user_id_is_read_back_from_storage():
    storage = MemoryStorage({USER_ID_KEY: "existing-user"})
    resolver = IdentityResolver(ids=make_ids(), storage=storage)

    assert resolver.resolve_user_id() == "existing-user"


def test_user_id_is_cached_after_first_resolution():
    storage = MemoryStorage()
    resolver = IdentityResolver(ids=make_ids(), storage=storage)
    first = resolver.resolve_user_id()

    storage.data[USER_ID_KEY] = "changed-underneath"
    assert resolver.resolve_user_id() == first


def test_unavailable_storage_falls_back_to_ephemeral_id():
    resolver = IdentityResolver(ids=make_ids(), storage=UnavailableStorage())

    user_id = resolver.resolve_user_id()

    assert ID_RE.match(user_id)
    assert resolver.is_ephemeral is True
    assert resolver.resolve_user_id() == user_id


def test_missing_storage_falls_back_to_ephemeral_id():
    resolver = IdentityResolver(ids=make_ids(), storage=None)
    assert resolver.resolve_user_id()
    assert resolver.is_ephemeral is True


def test_failed_write_is_not_retried():
    storage = FlakyStorage()
    resolver = IdentityResolver(ids=make_ids(), storage=storage)

    user_id = resolver.resolve_user_id()
    resolver.resolve_user_id()

    assert user_id
    assert resolver.is_ephemeral is True
    assert storage.set_calls == 1


def test_session_ids_are_fresh():
    resolver = IdentityResolver(ids=make_ids(), storage=MemoryStorage())
    assert resolver.new_session_id() != resolver.new_session_id()
