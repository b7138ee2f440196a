import pytest

from pulse.app.cli import main
from pulse.core.config import load_config, parse_config


def _base() -> dict:
    return {
        "run": {"seed": 1, "start_ms": 0, "until_ms": 60_000},
        "delivery": {"endpoint": "https://collect.example/api"},
        "logging": {},
    }


def test_defaults():
    cfg = parse_config(_base())

    assert cfg.run.run_id == "auto"
    assert cfg.delivery.mode == "duckdb"
    assert cfg.delivery.clean_slate is False
    assert cfg.logging.level == "INFO"


@pytest.mark.parametrize("section", ["run", "delivery", "logging"])
def test_missing_section_is_named(section):
    data = _base()
    del data[section]
    with pytest.raises(ValueError, match=section):
        parse_config(data)


def test_rejects_unknown_delivery_mode():
    data = _base()
    data["delivery"]["mode"] = "carrier_pigeon"
    with pytest.raises(ValueError):
        parse_config(data)


def test_rejects_non_positive_horizon():
    data = _base()
    data["run"]["until_ms"] = 0
    with pytest.raises(ValueError):
        parse_config(data)


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "replay.yaml"
    path.write_text(
        "run: {seed: 3, start_ms: 0, until_ms: 1000}\n"
        "delivery: {endpoint: 'https://c.example', mode: HTTP}\n"
        "logging: {level: debug}\n"
    )
    cfg = load_config(path)

    assert cfg.delivery.mode == "http"
    assert cfg.logging.level == "DEBUG"
    assert cfg.raw["run"]["seed"] == 3


def test_cli_replay_prints_summary(tmp_path, capsys):
    db_path = tmp_path / "pulse.duckdb"
    path = tmp_path / "replay.yaml"
    path.write_text(
        "run: {run_id: cli, seed: 3, start_ms: 0, until_ms: 5000}\n"
        "host: {url: 'https://example.com/'}\n"
        f"delivery: {{endpoint: 'duckdb://local', duckdb_path: '{db_path}', clean_slate: true}}\n"
        "logging: {level: WARNING}\n"
        "signals:\n"
        "  - {at_ms: 1000, type: custom, name: signup}\n"
    )

    assert main(["replay", "--config", str(path)]) == 0

    out = capsys.readouterr().out.strip().splitlines()[-1]
    assert out.startswith("run_id=cli user_id=")
    assert out.endswith("delivered=4 pending=0")
