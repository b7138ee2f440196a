from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .types import DeviceHints, DeviceType

_TABLET_PLATFORM = re.compile(r"ipad|tablet", re.IGNORECASE)
_MOBILE_UA = re.compile(r"mobile|android|iphone|ipod|blackberry|iemobile|opera mini")
_TABLET_UA = re.compile(r"tablet|ipad|android(?!.*mobile)")

MOBILE_MAX_WIDTH = 767
TABLET_MIN_WIDTH = 768
TABLET_MAX_WIDTH = 1024


def classify_device(hints: DeviceHints) -> DeviceType:
    """
    Form-factor heuristic:
      - client hints win when present (platform ipad/tablet -> tablet)
      - width <= 767 or (mobile UA and touch) -> mobile
      - width 768..1024, tablet UA, or (coarse pointer, no hover, touch) -> tablet
      - otherwise desktop
    """
    if hints.ua_mobile is not None:
        if hints.ua_platform and _TABLET_PLATFORM.search(hints.ua_platform):
            return DeviceType.TABLET
        return DeviceType.MOBILE if hints.ua_mobile else DeviceType.DESKTOP

    ua = (hints.user_agent or "").lower()
    width = hints.viewport_width
    touch = hints.has_touch_support
    is_mobile_ua = bool(_MOBILE_UA.search(ua))
    is_tablet_ua = bool(_TABLET_UA.search(ua))

    if (width is not None and width <= MOBILE_MAX_WIDTH) or (is_mobile_ua and touch):
        return DeviceType.MOBILE

    if (
        (width is not None and TABLET_MIN_WIDTH <= width <= TABLET_MAX_WIDTH)
        or is_tablet_ua
        or (hints.coarse_pointer and hints.hover_none and touch)
    ):
        return DeviceType.TABLET

    return DeviceType.DESKTOP


def parse_device_hints(raw: Mapping[str, Any] | None) -> DeviceHints:
    raw = raw or {}
    width = raw.get("viewport_width")
    ua_mobile = raw.get("ua_mobile")
    return DeviceHints(
        user_agent=str(raw.get("user_agent", "")),
        viewport_width=None if width is None else int(width),
        max_touch_points=int(raw.get("max_touch_points", 0)),
        has_touch_events=bool(raw.get("has_touch_events", False)),
        coarse_pointer=bool(raw.get("coarse_pointer", False)),
        hover_none=bool(raw.get("hover_none", False)),
        ua_mobile=None if ua_mobile is None else bool(ua_mobile),
        ua_platform=None if raw.get("ua_platform") is None else str(raw["ua_platform"]),
    )


class HintsClassifier:
    """Classifier over a fixed set of hints. Any fault classifies as unknown."""

    def __init__(self, hints: DeviceHints) -> None:
        self.hints = hints

    def device_type(self) -> DeviceType:
        try:
            return classify_device(self.hints)
        except (TypeError, ValueError, AttributeError):
            return DeviceType.UNKNOWN
