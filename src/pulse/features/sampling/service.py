from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit

from pulse.core.errors import ConfigurationError
from pulse.core.ids import stable_fraction

RoutePattern = str | re.Pattern[str]

SAMPLING_KEY_CHARS = 6


def is_sampled(user_id: str, sampling_rate: float) -> bool:
    """
    Deterministic per-user inclusion. The same user is always in or always out
    for a given rate, so a sampled-in user contributes all of their events.
    """
    if sampling_rate >= 1:
        return True
    if sampling_rate <= 0:
        return False
    return stable_fraction(user_id[-SAMPLING_KEY_CHARS:]) < sampling_rate


def compile_route_pattern(pattern: RoutePattern) -> re.Pattern[str] | str:
    """
    - re.Pattern: used as-is (search semantics)
    - string with '*': anchored wildcard, '*' matches any run of characters
    - other strings: kept as literals (exact equality)
    """
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise ConfigurationError(f"Unsupported route pattern {pattern!r}")
    if "*" in pattern:
        body = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.compile(f"^{body}$")
    return pattern


def parse_route_pattern(raw: Any) -> RoutePattern:
    """
    YAML shape: a bare string (literal or glob) or {regex: "<pattern>"}.
    """
    if isinstance(raw, re.Pattern | str):
        return raw
    if isinstance(raw, Mapping) and "regex" in raw:
        try:
            return re.compile(str(raw["regex"]))
        except re.error as e:
            raise ConfigurationError(f"Invalid exclude route regex {raw['regex']!r}: {e}") from e
    raise ConfigurationError(f"Unsupported exclude route entry {raw!r}")


class RouteFilter:
    """
    Gate for interaction events (scroll, click) on excluded paths.
    Lifecycle, page view and custom events are never passed through here.
    """

    def __init__(self, patterns: Iterable[RoutePattern] = ()) -> None:
        self._compiled = [compile_route_pattern(p) for p in patterns]

    def __bool__(self) -> bool:
        return bool(self._compiled)

    def is_route_excluded(self, path: str) -> bool:
        for pattern in self._compiled:
            if isinstance(pattern, str):
                if pattern == path:
                    return True
            elif pattern.search(path):
                return True
        return False

    def is_url_excluded(self, url: str) -> bool:
        if not self._compiled:
            return False
        return self.is_route_excluded(path_of(url))


def path_of(url: str) -> str:
    path = urlsplit(url).path
    return path or "/"
