from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pulse.core.errors import ConfigurationError
from pulse.features.device.service import parse_device_hints
from pulse.features.device.types import DeviceHints
from pulse.features.sampling.service import RoutePattern, compile_route_pattern, parse_route_pattern
from pulse.features.sessions.service import (
    DEFAULT_SESSION_TIMEOUT_MS,
    MIN_SESSION_TIMEOUT_MS,
    InactivityPolicy,
    SessionsConfig,
)
from pulse.features.validation.service import validate_global_metadata

FLUSH_INTERVAL_MS = 10_000
SCROLL_DEBOUNCE_MS = 250
CLICK_DEBOUNCE_MS = 100
NAVIGATION_SCROLL_GUARD_MS = 500


# ----------------------------
# Config
# ----------------------------


@dataclass(frozen=True)
class TrackerConfig:
    """
    Immutable once the engine is built. Every check runs here so an invalid
    config never reaches the engine.
    """

    session_timeout_ms: int = DEFAULT_SESSION_TIMEOUT_MS
    sampling_rate: float = 1.0
    exclude_routes: tuple[RoutePattern, ...] = ()
    global_metadata: dict[str, Any] | None = None
    debug: bool = False
    real_time: bool = False

    flush_interval_ms: int = FLUSH_INTERVAL_MS
    scroll_debounce_ms: int = SCROLL_DEBOUNCE_MS
    click_debounce_ms: int = CLICK_DEBOUNCE_MS
    navigation_scroll_guard_ms: int = NAVIGATION_SCROLL_GUARD_MS
    inactivity_policy: InactivityPolicy = InactivityPolicy.END_SESSION

    def __post_init__(self) -> None:
        if isinstance(self.session_timeout_ms, bool) or not isinstance(self.session_timeout_ms, int):
            raise ConfigurationError("session_timeout_ms must be an integer")
        if self.session_timeout_ms < MIN_SESSION_TIMEOUT_MS:
            raise ConfigurationError(
                f"session_timeout_ms must be >= {MIN_SESSION_TIMEOUT_MS} (got {self.session_timeout_ms})"
            )

        rate = self.sampling_rate
        if isinstance(rate, bool) or not isinstance(rate, int | float) or math.isnan(rate):
            raise ConfigurationError("sampling_rate must be a number")
        if not 0 <= rate <= 1:
            raise ConfigurationError(f"sampling_rate must be within [0, 1] (got {rate})")

        for pattern in self.exclude_routes:
            compile_route_pattern(pattern)

        if self.global_metadata is not None:
            result = validate_global_metadata(self.global_metadata)
            if not result.valid:
                raise ConfigurationError(result.message)

        if self.flush_interval_ms <= 0:
            raise ConfigurationError("flush_interval_ms must be > 0")
        for name in ("scroll_debounce_ms", "click_debounce_ms", "navigation_scroll_guard_ms"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0")

        if not isinstance(self.inactivity_policy, InactivityPolicy):
            raise ConfigurationError(f"Unsupported inactivity_policy={self.inactivity_policy!r}")

    @property
    def sessions_config(self) -> SessionsConfig:
        return SessionsConfig(
            session_timeout_ms=self.session_timeout_ms,
            inactivity_policy=self.inactivity_policy,
        )


def parse_tracker_config(data: Mapping[str, Any] | None) -> TrackerConfig:
    """
    YAML-shaped mapping -> TrackerConfig. Unknown keys are rejected so typos
    do not silently fall back to defaults.
    """
    data = dict(data or {})
    known = set(TrackerConfig.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown tracker config keys: {unknown}")

    if "exclude_routes" in data:
        routes = data["exclude_routes"] or []
        if not isinstance(routes, list | tuple):
            raise ConfigurationError("exclude_routes must be a list")
        data["exclude_routes"] = tuple(parse_route_pattern(r) for r in routes)

    if "inactivity_policy" in data:
        try:
            data["inactivity_policy"] = InactivityPolicy(str(data["inactivity_policy"]).strip().lower())
        except ValueError as e:
            allowed = [p.value for p in InactivityPolicy]
            raise ConfigurationError(
                f"Unsupported inactivity_policy={data['inactivity_policy']!r}. Allowed={allowed}"
            ) from e

    if "sampling_rate" in data and isinstance(data["sampling_rate"], int | float):
        data["sampling_rate"] = float(data["sampling_rate"])

    return TrackerConfig(**data)


# ----------------------------
# Host
# ----------------------------


@dataclass(frozen=True)
class HostContext:
    """What the host page knows at engine construction."""

    url: str
    referrer: str = ""
    device: DeviceHints = field(default_factory=DeviceHints)


def parse_host_context(data: Mapping[str, Any] | None) -> HostContext:
    data = data or {}
    if "url" not in data:
        raise ConfigurationError("host.url is required")
    return HostContext(
        url=str(data["url"]),
        referrer=str(data.get("referrer") or ""),
        device=parse_device_hints(data.get("device")),
    )
