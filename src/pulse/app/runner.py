from __future__ import annotations

from pulse.core.config import load_config
from pulse.features.bootstrap.service import BootstrapResult, bootstrap_run


def run(config_path: str) -> BootstrapResult:
    cfg = load_config(config_path)
    return bootstrap_run(cfg)
