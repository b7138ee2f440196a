from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import simpy

from pulse.core.logging import get_logger
from pulse.core.rng import RNG
from pulse.features.events.types import ClockLike
from pulse.features.identity.types import Storage
from pulse.features.tracker.service import Tracker
from pulse.features.tracker.types import HostContext, TrackerConfig, parse_tracker_config
from pulse.features.transport.service import HttpTransport
from pulse.features.transport.types import Transport
from pulse.features.validation.service import ValidationResult

_logger = get_logger(__name__)

# at most one engine per process
_tracker: Tracker | None = None


def start_tracking(
    endpoint: str,
    config: TrackerConfig | Mapping[str, Any] | None = None,
    *,
    host: HostContext,
    env: simpy.Environment,
    transport: Transport | None = None,
    storage: Storage | None = None,
    clock: ClockLike | None = None,
    rng: RNG | None = None,
) -> Tracker:
    """
    Builds the engine on first call. Later calls return the running engine
    unchanged; stop_tracking() releases the slot.

    Engine timers are scheduled on env; the caller owns that loop and must
    keep running it.
    """
    global _tracker
    if _tracker is not None:
        _logger.warning("tracking already started, returning the running engine")
        return _tracker

    if config is not None and not isinstance(config, TrackerConfig):
        config = parse_tracker_config(config)

    _tracker = Tracker(
        env,
        endpoint,
        config,
        host=host,
        transport=transport or HttpTransport(),
        storage=storage,
        clock=clock,
        rng=rng,
    )
    return _tracker


def get_tracker() -> Tracker | None:
    return _tracker


def send_custom_event(name: Any, metadata: Mapping[str, Any] | None = None) -> ValidationResult | None:
    if _tracker is None:
        _logger.error("send_custom_event called before start_tracking, event dropped")
        return None
    return _tracker.send_custom_event(name, metadata)


def stop_tracking() -> None:
    global _tracker
    if _tracker is None:
        return
    tracker, _tracker = _tracker, None
    tracker.on_teardown()
