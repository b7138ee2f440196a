from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import simpy

from pulse.core.clock import SimClock, ms_to_s
from pulse.core.config import AppConfig
from pulse.core.ids import deterministic_run_id_from_config
from pulse.core.logging import get_logger
from pulse.core.rng import RNG
from pulse.core.types import RunContext
from pulse.features.persistence.duckdb_adapter import DuckDBAdapter
from pulse.features.persistence.service import DuckDBCollectorTransport, DuckDBKeyValueStore
from pulse.features.tracker.service import Tracker
from pulse.features.tracker.types import parse_host_context, parse_tracker_config
from pulse.features.transport.service import HttpTransport, TieredTransport
from pulse.features.transport.types import Transport

from .types import ScriptedSignal, SignalKind, parse_click_signal, parse_signals


@dataclass(frozen=True)
class BootstrapResult:
    ctx: RunContext
    user_id: str
    session_id: str
    delivered: int
    pending: int
    duckdb_path: str


def apply_signal(tracker: Tracker, signal: ScriptedSignal) -> None:
    p = signal.params
    kind = signal.kind

    if kind is SignalKind.SCROLL:
        tracker.on_scroll(
            float(p.get("offset", 0.0)),
            float(p.get("viewport_height", 0.0)),
            float(p.get("page_height", 0.0)),
        )
    elif kind is SignalKind.CLICK:
        tracker.on_click(parse_click_signal(p))
    elif kind is SignalKind.ACTIVITY:
        tracker.on_activity()
    elif kind is SignalKind.VISIBILITY:
        tracker.on_visibility_change(bool(p.get("hidden", False)))
    elif kind is SignalKind.NAVIGATION:
        tracker.on_navigation(str(p["url"]))
    elif kind is SignalKind.CUSTOM:
        tracker.send_custom_event(p.get("name"), p.get("metadata"))
    elif kind is SignalKind.TEARDOWN:
        tracker.on_teardown()


def _feed_signals(env: simpy.Environment, tracker: Tracker, signals: Iterable[ScriptedSignal]):
    for signal in signals:
        delay_s = ms_to_s(signal.at_ms) - float(env.now)
        if delay_s > 0:
            yield env.timeout(delay_s)
        apply_signal(tracker, signal)


def build_transport(
    cfg: AppConfig, collector: DuckDBCollectorTransport, logger: logging.Logger
) -> tuple[Transport, HttpTransport | None]:
    """duckdb mode lands batches locally; http mode posts with a retrying fallback."""
    if cfg.delivery.mode == "http":
        http = HttpTransport(timeout_s=cfg.delivery.timeout_s, logger=logger)
        return TieredTransport(http, http), http
    return collector, None


def bootstrap_run(cfg: AppConfig) -> BootstrapResult:
    raw: dict[str, Any] = cfg.raw if isinstance(cfg.raw, dict) else {}

    # ----- run identity -----
    run_id = deterministic_run_id_from_config(raw) if cfg.run.run_id == "auto" else cfg.run.run_id
    logger = get_logger("pulse", cfg.logging.level)
    ctx = RunContext(run_id=run_id, seed=cfg.run.seed, start_ms=cfg.run.start_ms)

    # ----- feature config (fails before anything is opened) -----
    tracker_cfg = parse_tracker_config(raw.get("tracker"))
    host = parse_host_context(raw.get("host"))
    signals = parse_signals(raw.get("signals"))

    env = simpy.Environment()
    clock = SimClock(env, cfg.run.start_ms)

    # ----- storage + delivery -----
    adapter = DuckDBAdapter(path=cfg.delivery.duckdb_path, clean_slate=cfg.delivery.clean_slate)
    adapter.open()
    collector = DuckDBCollectorTransport(adapter=adapter, clock=clock, logger=logger)
    transport, http = build_transport(cfg, collector, logger)

    try:
        tracker = Tracker(
            env,
            cfg.delivery.endpoint,
            tracker_cfg,
            host=host,
            transport=transport,
            storage=DuckDBKeyValueStore(adapter),
            clock=clock,
            rng=RNG(cfg.run.seed),
            logger=logger,
        )
        env.process(_feed_signals(env, tracker, signals))

        logger.info(
            "starting replay",
            extra={"run_id": ctx.run_id, "session_id": tracker.session_id, "num_events": len(signals)},
        )
        env.run(until=ms_to_s(cfg.run.until_ms))

        # the page goes away at the end of the script
        tracker.on_teardown()

        logger.info(
            "replay finished",
            extra={
                "run_id": ctx.run_id,
                "session_id": tracker.session_id,
                "num_events": tracker.dispatcher.delivered,
            },
        )
        return BootstrapResult(
            ctx=ctx,
            user_id=tracker.user_id,
            session_id=tracker.session_id,
            delivered=tracker.dispatcher.delivered,
            pending=len(tracker.queue),
            duckdb_path=cfg.delivery.duckdb_path,
        )
    finally:
        if http is not None:
            http.close()
        adapter.close()
