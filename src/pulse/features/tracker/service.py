from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import simpy

from pulse.core.clock import SimClock, WallClock, ms_to_s
from pulse.core.errors import ConfigurationError, EventConstructionError
from pulse.core.ids import IdGenerator
from pulse.core.logging import get_logger
from pulse.core.rng import RNG
from pulse.features.coalescing.service import Coalescer
from pulse.features.device.service import HintsClassifier
from pulse.features.device.types import Classifier, DeviceType
from pulse.features.dispatch.service import Dispatcher, EventQueue, FlushOutcome
from pulse.features.events.schema import Event, EventType, ScrollData, ScrollDirection
from pulse.features.events.service import (
    EventAssembler,
    build_click_data,
    custom_event_data,
    extract_utm,
    scroll_depth,
)
from pulse.features.events.types import ClickSignal, ClockLike, Signal
from pulse.features.identity.service import IdentityResolver
from pulse.features.identity.types import Storage
from pulse.features.sampling.service import RouteFilter, is_sampled
from pulse.features.sessions.service import EndReason, Session, SessionStateMachine
from pulse.features.transport.types import Transport
from pulse.features.validation.service import ValidationResult, validate_custom_event

from .types import HostContext, TrackerConfig

Listener = Callable[[Event], None]

# interaction events; the only ones route exclusion applies to
ROUTE_FILTERED_TYPES = frozenset({EventType.SCROLL, EventType.CLICK})


@dataclass(frozen=True, slots=True)
class ScrollSample:
    offset: float
    viewport_height: float
    page_height: float


@dataclass(frozen=True, slots=True)
class PendingClick:
    signal: ClickSignal
    page_url: str


class Tracker:
    """
    One engine per page session.

    raw signal -> coalescer (scroll/click) -> sampling & route gate
      -> assembler -> queue -> dispatcher (timer | session end | hide | teardown)

    Construction emits session_start then page_view and arms the inactivity timer.
    """

    def __init__(
        self,
        env: simpy.Environment,
        endpoint: str,
        config: TrackerConfig | None = None,
        *,
        host: HostContext,
        transport: Transport,
        storage: Storage | None = None,
        clock: ClockLike | None = None,
        rng: RNG | None = None,
        classifier: Classifier | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if not endpoint:
            raise ConfigurationError("endpoint is required")

        self.env = env
        self.endpoint = endpoint
        self.config = config or TrackerConfig()
        self.host = host
        self.clock = clock or SimClock(env, WallClock().now())
        self._logger = logger or get_logger(__name__)

        ids = IdGenerator(rng=rng or RNG(), clock=self.clock)
        self.identity = IdentityResolver(ids=ids, storage=storage, logger=self._logger)
        user_id = self.identity.resolve_user_id()

        self._sampled = is_sampled(user_id, self.config.sampling_rate)
        self._routes = RouteFilter(self.config.exclude_routes)
        self.device: DeviceType = (classifier or HintsClassifier(host.device)).device_type()

        self.session = Session(
            session_id=self.identity.new_session_id(),
            user_id=user_id,
            page_url=host.url,
            utm=extract_utm(host.url),
        )
        self.assembler = EventAssembler(clock=self.clock, referrer=host.referrer, utm=self.session.utm)
        self.dispatcher = Dispatcher(
            env=env,
            endpoint=endpoint,
            transport=transport,
            session=self.session,
            device=self.device,
            debug=self.config.debug,
            global_metadata=self.config.global_metadata,
            flush_interval_ms=self.config.flush_interval_ms,
            logger=self._logger,
        )
        self.machine = SessionStateMachine(
            env=env,
            session=self.session,
            ids=self.identity,
            cfg=self.config.sessions_config,
            events=self,
            logger=self._logger,
        )

        self._scroll: Coalescer[ScrollSample] = Coalescer(
            env, self.config.scroll_debounce_ms, self._emit_scroll
        )
        self._click: Coalescer[PendingClick] = Coalescer(
            env, self.config.click_debounce_ms, self._emit_click
        )
        self._last_scroll_offset = 0.0
        self._scroll_guard_until_s: float | None = None

        self._listeners: list[Listener] = []
        self._torn_down = False

        if self.config.debug:
            self._logger.warning("pulse debug mode enabled. Remember to disable it in production.")

        self.machine.start()
        self._track(Signal(type=EventType.PAGE_VIEW))

    # ---- read-only views ----

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def queue(self) -> EventQueue:
        return self.dispatcher.queue

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    def is_sampled(self) -> bool:
        return self._sampled

    def is_route_excluded(self, path: str) -> bool:
        return self._routes.is_route_excluded(path)

    # ---- host signal feed ----

    def on_scroll(self, offset: float, viewport_height: float, page_height: float) -> None:
        if self._torn_down:
            return
        guard_until, self._scroll_guard_until_s = self._scroll_guard_until_s, None
        if guard_until is not None and self.env.now < guard_until:
            # first scroll after navigation is the reflow; the baseline still moves
            self._last_scroll_offset = float(offset)
            return
        self.machine.touch()
        self._scroll.push(ScrollSample(float(offset), float(viewport_height), float(page_height)))

    def on_click(self, signal: ClickSignal) -> None:
        if self._torn_down:
            return
        self.machine.touch()
        self._click.push(PendingClick(signal=signal, page_url=self.session.page_url))

    def on_activity(self) -> None:
        """Pointer move or key press."""
        if self._torn_down:
            return
        self.machine.touch()

    def on_visibility_change(self, hidden: bool) -> None:
        if self._torn_down:
            return
        if not hidden:
            self.machine.touch()
            return
        if not self.machine.end(EndReason.HIDDEN) and self.queue:
            self.dispatcher.flush(reason="hidden")

    def on_navigation(self, new_url: str) -> None:
        if self._torn_down:
            return
        self.machine.touch()
        from_url = self.machine.navigate(new_url)
        self._track(Signal(type=EventType.PAGE_VIEW, url=new_url, from_url=from_url))
        self._scroll_guard_until_s = float(self.env.now) + ms_to_s(self.config.navigation_scroll_guard_ms)

    def on_teardown(self) -> None:
        """Unload: drain pending samples, end the session, flush, stop every timer."""
        if self._torn_down:
            return
        self._scroll.flush_now()
        self._click.flush_now()
        if not self.machine.end(EndReason.UNLOAD):
            self.dispatcher.flush(reason="teardown")
        self.destroy()

    # ---- public operations ----

    def send_custom_event(self, name: Any, metadata: Mapping[str, Any] | None = None) -> ValidationResult:
        result = validate_custom_event(name, metadata)
        if not result.valid:
            if self.config.debug:
                self._logger.error(
                    f"Invalid custom event: {result.message}",
                    extra={"reason": result.reason.value if result.reason else None},
                )
            return result

        if not self._torn_down:
            self._track(Signal(type=EventType.CUSTOM, custom_event=custom_event_data(name, metadata)))
        return result

    def flush(self) -> FlushOutcome:
        return self.dispatcher.flush(reason="manual")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Real-time mirror. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def destroy(self) -> None:
        """Clears every timer. Queued events stay where they are."""
        self._torn_down = True
        self._scroll.cancel()
        self._click.cancel()
        self.machine.stop()
        self.dispatcher.stop()
        self._listeners.clear()

    # ---- lifecycle sink (called by the state machine) ----

    def emit(self, event_type: EventType) -> None:
        self._track(Signal(type=event_type))
        if event_type is EventType.SESSION_END and self.queue:
            self.dispatcher.flush(reason="session_end")

    # ---- internals ----

    def _emit_scroll(self, sample: ScrollSample) -> None:
        direction = ScrollDirection.DOWN if sample.offset > self._last_scroll_offset else ScrollDirection.UP
        self._last_scroll_offset = sample.offset
        depth = scroll_depth(sample.offset, sample.viewport_height, sample.page_height)
        self._track(
            Signal(type=EventType.SCROLL, scroll_data=ScrollData(depth=depth, direction=direction))
        )

    def _emit_click(self, pending: PendingClick) -> None:
        self._track(
            Signal(
                type=EventType.CLICK,
                url=pending.page_url,
                click_data=build_click_data(pending.signal),
            )
        )

    def _track(self, signal: Signal) -> Event | None:
        if not self._sampled:
            return None
        if signal.type in ROUTE_FILTERED_TYPES and self._routes.is_url_excluded(
            signal.url or self.session.page_url
        ):
            return None

        try:
            event = self.assembler.assemble(signal, self.session)
        except EventConstructionError as e:
            if self.config.debug:
                self._logger.error(str(e), extra={"event_type": signal.type.value})
            return None

        self.dispatcher.enqueue(event)

        if self.config.debug:
            self._logger.debug(
                "event",
                extra={"event_type": event.type.value, "session_id": self.session.session_id},
            )
        if self.config.real_time:
            self._mirror(event)
        return event

    def _mirror(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:  # noqa: BLE001 - a listener must not break tracking
                self._logger.warning(
                    f"real-time listener failed: {type(e).__name__}: {e}",
                    extra={"event_type": event.type.value},
                )
