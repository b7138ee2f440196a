from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DELIVERY_MODES = ("duckdb", "http")


@dataclass(frozen=True)
class RunConfig:
    run_id: str
    seed: int
    start_ms: int
    until_ms: int


@dataclass(frozen=True)
class DeliveryConfig:
    endpoint: str
    mode: str = "duckdb"
    duckdb_path: str = "data/pulse.duckdb"
    clean_slate: bool = False
    timeout_s: float = 5.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    run: RunConfig
    delivery: DeliveryConfig
    logging: LoggingConfig
    raw: dict[str, Any]  # original parsed YAML (tracker/host/signals are parsed by features)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def parse_config(data: dict[str, Any]) -> AppConfig:
    for key in ["run", "delivery", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    run = data.get("run") or {}
    delivery = data.get("delivery") or {}
    logging_cfg = data.get("logging") or {}

    run_cfg = RunConfig(
        run_id=str(run.get("run_id", "auto")),
        seed=int(run["seed"]),
        start_ms=int(run["start_ms"]),
        until_ms=int(run["until_ms"]),
    )
    if run_cfg.until_ms <= 0:
        raise ValueError("run.until_ms must be > 0")

    mode = str(delivery.get("mode", "duckdb")).strip().lower()
    if mode not in DELIVERY_MODES:
        raise ValueError(f"Unsupported delivery.mode={mode!r}. Allowed={list(DELIVERY_MODES)}")

    delivery_cfg = DeliveryConfig(
        endpoint=str(delivery["endpoint"]),
        mode=mode,
        duckdb_path=str(delivery.get("duckdb_path", "data/pulse.duckdb")),
        clean_slate=bool(delivery.get("clean_slate", False)),
        timeout_s=float(delivery.get("timeout_s", 5.0)),
    )

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    return AppConfig(run=run_cfg, delivery=delivery_cfg, logging=log_cfg, raw=data)


def load_config(path: str | Path) -> AppConfig:
    data = load_yaml(path)
    return parse_config(data)
