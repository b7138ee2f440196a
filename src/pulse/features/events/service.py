from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qs, urlsplit

from pulse.features.events.schema import (
    ClickAttrData,
    ClickData,
    CustomEventData,
    Event,
    EventType,
    MetadataValue,
    Utm,
)

from .types import DATA_ATTR_PREFIX, ClickSignal, ClockLike, SessionLike, Signal

UTM_PARAMS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")
DIRECT_REFERRER = "Direct"


def scroll_depth(scroll_offset: float, viewport_height: float, page_height: float) -> int:
    """
    Percent of the scrollable range covered, floored and clamped to [0, 100].
    A page that cannot scroll (page_height <= viewport_height) reports 0.
    """
    scrollable = float(page_height) - float(viewport_height)
    if scrollable <= 0 or not math.isfinite(scrollable):
        return 0
    offset = float(scroll_offset)
    if not math.isfinite(offset):
        return 0
    depth = math.floor(offset / scrollable * 100.0)
    return max(0, min(100, depth))


def relative_coordinate(client: float, origin: float, size: float) -> float:
    """Position within an element in [0, 1]; 0 for an element with no extent."""
    if size <= 0:
        return 0.0
    ratio = (float(client) - float(origin)) / float(size)
    return max(0.0, min(1.0, ratio))


def build_click_data(signal: ClickSignal) -> ClickData:
    """
    The reported element is the click target, or its nearest ancestor carrying
    a data-pulse-name attribute.
    """
    name_attr = f"{DATA_ATTR_PREFIX}-name"
    value_attr = f"{DATA_ATTR_PREFIX}-value"

    element = signal.target.closest_with_attribute(name_attr) or signal.target

    attr_data: ClickAttrData | None = None
    attr_name = element.attributes.get(name_attr)
    if attr_name:
        attr_data = ClickAttrData(name=attr_name, value=element.attributes.get(value_attr) or None)

    rect = element.rect
    return ClickData(
        element=element.tag.lower(),
        x=float(signal.x),
        y=float(signal.y),
        relative_x=relative_coordinate(signal.x, rect.left, rect.width),
        relative_y=relative_coordinate(signal.y, rect.top, rect.height),
        id=element.id or None,
        class_name=element.class_name or None,
        attr_data=attr_data,
    )


def extract_utm(url: str) -> Utm | None:
    query = parse_qs(urlsplit(url).query)
    values: dict[str, str] = {}
    for param in UTM_PARAMS:
        found = query.get(param)
        if found and found[0]:
            values[param.removeprefix("utm_")] = found[0]
    return Utm(**values) if values else None


def copy_metadata(metadata: Mapping[str, Any] | None) -> dict[str, MetadataValue] | None:
    if metadata is None:
        return None
    return {k: list(v) if isinstance(v, list) else v for k, v in metadata.items()}


def custom_event_data(name: str, metadata: Mapping[str, Any] | None = None) -> CustomEventData:
    return CustomEventData(name=name, metadata=copy_metadata(metadata))


class EventAssembler:
    """
    Builds immutable events from typed signals plus ambient session state.

    referrer and utm are acquisition signals: they ride on the first
    session_start of the engine's lifetime only, never on resumed sessions.
    """

    def __init__(
        self,
        *,
        clock: ClockLike,
        referrer: str | None,
        utm: Utm | None,
    ) -> None:
        self._clock = clock
        self._referrer = referrer or DIRECT_REFERRER
        self._utm = utm
        self._acquisition_sent = False

    @property
    def acquisition_sent(self) -> bool:
        return self._acquisition_sent

    def assemble(self, signal: Signal, session: SessionLike) -> Event:
        """
        Raises EventConstructionError when a SCROLL / CLICK / CUSTOM signal
        lacks its payload.
        """
        is_first_start = signal.type is EventType.SESSION_START and not self._acquisition_sent

        event = Event(
            type=signal.type,
            page_url=signal.url or session.page_url,
            timestamp=int(self._clock.now()),
            referrer=self._referrer if is_first_start else None,
            from_page_url=signal.from_url or None,
            scroll_data=signal.scroll_data,
            click_data=signal.click_data,
            custom_event=signal.custom_event,
            utm=self._utm if is_first_start else None,
        )

        if is_first_start:
            self._acquisition_sent = True

        return event
