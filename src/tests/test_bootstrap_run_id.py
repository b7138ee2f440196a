from pulse.core.config import parse_config
from pulse.features.bootstrap.service import bootstrap_run


def _cfg_dict(tmp_path, run_id: str) -> dict:
    return {
        "run": {"run_id": run_id, "seed": 123, "start_ms": 1_767_225_600_000, "until_ms": 30_000},
        "host": {"url": "https://example.com/"},
        "delivery": {
            "endpoint": "duckdb://local",
            "duckdb_path": str(tmp_path / "pulse.duckdb"),
            "clean_slate": True,
        },
        "logging": {"level": "INFO"},
    }


def test_run_id_auto_is_deterministic(tmp_path):
    cfg = parse_config(_cfg_dict(tmp_path, "auto"))

    r1 = bootstrap_run(cfg)
    r2 = bootstrap_run(cfg)

    assert r1.ctx.run_id == r2.ctx.run_id
    assert len(r1.ctx.run_id) == 12


def test_run_id_respects_explicit_value(tmp_path):
    cfg = parse_config(_cfg_dict(tmp_path, "my_run"))

    r = bootstrap_run(cfg)
    assert r.ctx.run_id == "my_run"
