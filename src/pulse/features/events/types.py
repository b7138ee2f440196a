from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

from pulse.features.events.schema import ClickData, CustomEventData, EventType, ScrollData

DATA_ATTR_PREFIX = "data-pulse"


class ClockLike(Protocol):
    def now(self) -> int: ...


class SessionLike(Protocol):
    page_url: str


@dataclass(frozen=True, slots=True)
class Signal:
    """
    A typed request to record one event. SCROLL / CLICK / CUSTOM must carry
    their payload; the assembler refuses them otherwise.
    """

    type: EventType
    url: str | None = None
    from_url: str | None = None
    scroll_data: ScrollData | None = None
    click_data: ClickData | None = None
    custom_event: CustomEventData | None = None


# ----------------------------
# Raw host input for clicks
# ----------------------------


@dataclass(frozen=True, slots=True)
class ElementRect:
    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class ClickTarget:
    tag: str
    rect: ElementRect = ElementRect(0.0, 0.0, 0.0, 0.0)
    id: str | None = None
    class_name: str | None = None
    attributes: Mapping[str, str] = field(default_factory=dict)
    parent: ClickTarget | None = None

    def closest_with_attribute(self, name: str) -> ClickTarget | None:
        node: ClickTarget | None = self
        while node is not None:
            if name in node.attributes:
                return node
            node = node.parent
        return None


@dataclass(frozen=True)
class ClickSignal:
    x: float
    y: float
    target: ClickTarget
