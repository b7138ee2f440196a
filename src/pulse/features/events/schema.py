from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pulse.core.errors import EventConstructionError

MetadataValue = str | int | float | bool | list[str]


class EventType(str, Enum):
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    PAGE_VIEW = "page_view"
    SCROLL = "scroll"
    CLICK = "click"
    CUSTOM = "custom"


class ScrollDirection(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True, slots=True)
class ScrollData:
    depth: int
    direction: ScrollDirection

    def as_wire(self) -> dict[str, Any]:
        return {"depth": self.depth, "direction": self.direction.value}


@dataclass(frozen=True, slots=True)
class ClickAttrData:
    name: str
    value: str | None = None

    def as_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.value:
            out["value"] = self.value
        return out


@dataclass(frozen=True, slots=True)
class ClickData:
    element: str
    x: float
    y: float
    relative_x: float
    relative_y: float
    id: str | None = None
    class_name: str | None = None
    attr_data: ClickAttrData | None = None

    def as_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "element": self.element,
            "x": self.x,
            "y": self.y,
            "relative_x": self.relative_x,
            "relative_y": self.relative_y,
        }
        if self.id:
            out["id"] = self.id
        if self.class_name:
            out["class"] = self.class_name
        if self.attr_data is not None:
            out["attr_data"] = self.attr_data.as_wire()
        return out


@dataclass(frozen=True, slots=True)
class CustomEventData:
    name: str
    metadata: dict[str, MetadataValue] | None = None

    def as_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.metadata is not None:
            out["metadata"] = self.metadata
        return out


@dataclass(frozen=True, slots=True)
class Utm:
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None

    def as_wire(self) -> dict[str, str]:
        fields = {
            "source": self.source,
            "medium": self.medium,
            "campaign": self.campaign,
            "term": self.term,
            "content": self.content,
        }
        return {k: v for k, v in fields.items() if v}


# type -> the single payload attribute it requires
REQUIRED_PAYLOAD: dict[EventType, str] = {
    EventType.SCROLL: "scroll_data",
    EventType.CLICK: "click_data",
    EventType.CUSTOM: "custom_event",
}
PAYLOAD_FIELDS = ("scroll_data", "click_data", "custom_event")


@dataclass(frozen=True, slots=True)
class Event:
    type: EventType
    page_url: str
    timestamp: int

    referrer: str | None = None
    from_page_url: str | None = None
    scroll_data: ScrollData | None = None
    click_data: ClickData | None = None
    custom_event: CustomEventData | None = None
    utm: Utm | None = None

    def __post_init__(self) -> None:
        required = REQUIRED_PAYLOAD.get(self.type)
        if required is not None and getattr(self, required) is None:
            raise EventConstructionError(
                f"{required} is required for {self.type.value} events. Event ignored."
            )
        for name in PAYLOAD_FIELDS:
            if name != required and getattr(self, name) is not None:
                raise EventConstructionError(
                    f"{name} is not allowed on {self.type.value} events."
                )

    @property
    def dedup_key(self) -> tuple[int, EventType]:
        return (self.timestamp, self.type)

    def as_wire(self) -> dict[str, Any]:
        """
        snake_case wire representation; optional fields are omitted when absent.
        """
        out: dict[str, Any] = {
            "type": self.type.value,
            "page_url": self.page_url,
            "timestamp": int(self.timestamp),
        }
        if self.referrer is not None:
            out["referrer"] = self.referrer
        if self.from_page_url is not None:
            out["from_page_url"] = self.from_page_url
        if self.scroll_data is not None:
            out["scroll_data"] = self.scroll_data.as_wire()
        if self.click_data is not None:
            out["click_data"] = self.click_data.as_wire()
        if self.custom_event is not None:
            out["custom_event"] = self.custom_event.as_wire()
        if self.utm is not None:
            utm = self.utm.as_wire()
            if utm:
                out["utm"] = utm
        return out


def json_dumps(payload: dict[str, Any]) -> str:
    # Stable JSON for deterministic outputs/diffs
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
