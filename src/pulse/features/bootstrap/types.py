from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pulse.core.errors import ConfigurationError
from pulse.features.events.types import ClickSignal, ClickTarget, ElementRect


class SignalKind(str, Enum):
    SCROLL = "scroll"
    CLICK = "click"
    ACTIVITY = "activity"
    VISIBILITY = "visibility"
    NAVIGATION = "navigation"
    CUSTOM = "custom"
    TEARDOWN = "teardown"


@dataclass(frozen=True)
class ScriptedSignal:
    """One host signal from the replay script, delivered at_ms after start."""

    at_ms: int
    kind: SignalKind
    params: Mapping[str, Any] = field(default_factory=dict)


def parse_click_target(raw: Mapping[str, Any] | None) -> ClickTarget:
    raw = raw or {}
    rect = raw.get("rect") or {}
    return ClickTarget(
        tag=str(raw.get("tag", "div")),
        rect=ElementRect(
            left=float(rect.get("left", 0.0)),
            top=float(rect.get("top", 0.0)),
            width=float(rect.get("width", 0.0)),
            height=float(rect.get("height", 0.0)),
        ),
        id=raw.get("id"),
        class_name=raw.get("class_name"),
        attributes={str(k): str(v) for k, v in (raw.get("attributes") or {}).items()},
        parent=parse_click_target(raw["parent"]) if raw.get("parent") else None,
    )


def parse_click_signal(params: Mapping[str, Any]) -> ClickSignal:
    return ClickSignal(
        x=float(params.get("x", 0.0)),
        y=float(params.get("y", 0.0)),
        target=parse_click_target(params.get("target")),
    )


def parse_signals(raw: Any) -> list[ScriptedSignal]:
    """
    YAML list of {at_ms, type, ...params}. Returned in delivery order
    (stable for equal at_ms).
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError("signals must be a list")

    out: list[ScriptedSignal] = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise ConfigurationError(f"signals[{i}] must be a mapping")
        try:
            kind = SignalKind(str(item.get("type", "")).strip().lower())
        except ValueError as e:
            allowed = [k.value for k in SignalKind]
            raise ConfigurationError(
                f"signals[{i}] has unsupported type={item.get('type')!r}. Allowed={allowed}"
            ) from e

        at_ms = int(item.get("at_ms", 0))
        if at_ms < 0:
            raise ConfigurationError(f"signals[{i}].at_ms must be >= 0")

        params = {k: v for k, v in item.items() if k not in ("at_ms", "type")}
        out.append(ScriptedSignal(at_ms=at_ms, kind=kind, params=params))

    return sorted(out, key=lambda s: s.at_ms)
