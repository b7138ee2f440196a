from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DeviceHints:
    """
    What the host can tell about the form factor.
    ua_mobile / ua_platform come from user-agent client hints when available.
    """

    user_agent: str = ""
    viewport_width: int | None = None
    max_touch_points: int = 0
    has_touch_events: bool = False
    coarse_pointer: bool = False
    hover_none: bool = False
    ua_mobile: bool | None = None
    ua_platform: str | None = None

    @property
    def has_touch_support(self) -> bool:
        return self.has_touch_events or self.max_touch_points > 0


class Classifier(Protocol):
    def device_type(self) -> DeviceType: ...
