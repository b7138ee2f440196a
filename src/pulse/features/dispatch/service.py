from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from enum import Enum
from functools import partial
from typing import Any, Protocol

import simpy

from pulse.core.errors import DeliveryFailure
from pulse.core.logging import get_logger
from pulse.features.coalescing.service import RecurringTimer
from pulse.features.device.types import DeviceType
from pulse.features.events.schema import Event, json_dumps
from pulse.features.transport.types import Transport

FLUSH_INTERVAL_MS = 10_000


class FlushOutcome(str, Enum):
    EMPTY = "empty"
    DELIVERED = "delivered"
    FAILED = "failed"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


class SessionLike(Protocol):
    session_id: str
    user_id: str


class EventQueue:
    """
    Ordered buffer; insertion order is emission order.
    Only drain() removes events, and only after confirmed delivery.
    """

    def __init__(self) -> None:
        self._events: list[Event] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def append(self, event: Event) -> None:
        self._events.append(event)

    def snapshot(self) -> list[Event]:
        return list(self._events)

    def dedupe(self) -> int:
        """Keep the first event for every (timestamp, type); returns how many were dropped."""
        seen: set[tuple[int, Any]] = set()
        kept: list[Event] = []
        for event in self._events:
            key = event.dedup_key
            if key in seen:
                continue
            seen.add(key)
            kept.append(event)
        dropped = len(self._events) - len(kept)
        self._events = kept
        return dropped

    def drain(self, count: int) -> list[Event]:
        drained = self._events[:count]
        del self._events[:count]
        return drained


class Dispatcher:
    """
    Queue + flush policy.
    - enqueue() arms a single recurring flush timer on first use
    - flush() dedupes, builds the wire payload and hands it to the transport
    - success drains the delivered events; failure leaves the queue for the next cycle
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        endpoint: str,
        transport: Transport,
        session: SessionLike,
        device: DeviceType,
        debug: bool = False,
        global_metadata: Mapping[str, Any] | None = None,
        flush_interval_ms: float = FLUSH_INTERVAL_MS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.env = env
        self.endpoint = endpoint
        self.transport = transport
        self.session = session
        self.device = device
        self.debug = debug
        self.global_metadata = dict(global_metadata) if global_metadata else None

        self.queue = EventQueue()
        self._timer = RecurringTimer(env, flush_interval_ms, self._on_interval)
        self._in_flight = False
        # reason of a trigger that arrived while a send was outstanding
        self._flush_again: str | None = None
        self.delivered = 0
        self._logger = logger or get_logger(__name__)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    def enqueue(self, event: Event) -> None:
        self.queue.append(event)
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def build_payload(self, events: list[Event]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "user_id": self.session.user_id,
            "session_id": self.session.session_id,
            "device": self.device.value,
            "events": [e.as_wire() for e in events],
        }
        if self.debug:
            payload["debug_mode"] = True
        if self.global_metadata:
            payload["global_metadata"] = dict(self.global_metadata)
        return payload

    def flush(self, *, reason: str = "manual") -> FlushOutcome:
        if self._in_flight:
            # replayed once the outstanding send settles, even after stop()
            self._flush_again = reason
            return FlushOutcome.IN_FLIGHT
        if not self.queue:
            return FlushOutcome.EMPTY

        dropped = self.queue.dedupe()
        if dropped:
            self._logger.debug("deduplicated events", extra={"num_events": dropped, "reason": reason})

        batch = self.queue.snapshot()
        body = json_dumps(self.build_payload(batch)).encode("utf-8")

        try:
            result = self.transport.send(self.endpoint, body)
        except Exception as e:  # noqa: BLE001 - a transport fault is a failed delivery
            self._log_failure(DeliveryFailure(f"{type(e).__name__}: {e}"), len(batch), reason)
            return FlushOutcome.FAILED

        if isinstance(result, simpy.events.Event):
            if result.callbacks is None:
                return self._settle(result.ok and bool(result.value), len(batch), reason)
            self._in_flight = True
            result.callbacks.append(partial(self._on_async_result, count=len(batch), reason=reason))
            return FlushOutcome.PENDING

        return self._settle(bool(result), len(batch), reason)

    def _on_interval(self) -> None:
        if self.queue:
            self.flush(reason="timer")

    def _on_async_result(self, ev: simpy.events.Event, *, count: int, reason: str) -> None:
        self._in_flight = False
        if ev.ok:
            self._settle(bool(ev.value), count, reason)
        else:
            ev.defused = True
            self._log_failure(DeliveryFailure(str(ev.value)), count, reason)

        again, self._flush_again = self._flush_again, None
        if again is not None and self.queue:
            self.flush(reason=again)

    def _settle(self, ok: bool, count: int, reason: str) -> FlushOutcome:
        if not ok:
            self._log_failure(DeliveryFailure("transport reported failure"), count, reason)
            return FlushOutcome.FAILED

        self.queue.drain(count)
        self.delivered += count
        self._logger.info(
            "flush",
            extra={
                "reason": reason,
                "endpoint": self.endpoint,
                "num_events": count,
                "session_id": self.session.session_id,
                "status": FlushOutcome.DELIVERED.value,
            },
        )
        return FlushOutcome.DELIVERED

    def _log_failure(self, err: DeliveryFailure, count: int, reason: str) -> None:
        self._logger.warning(
            f"delivery failed, keeping queue for retry: {err}",
            extra={
                "reason": reason,
                "endpoint": self.endpoint,
                "num_events": count,
                "status": FlushOutcome.FAILED.value,
            },
        )
