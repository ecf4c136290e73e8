from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from bridge import app, build_config, format_stats

runner = CliRunner()


def test_info_lists_channels() -> None:
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "Weighbridge Bridge" in result.output
    assert "30080" in result.output


def test_build_config_applies_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "bridge.json"
    cfg_path.write_text(json.dumps({"weight": {"host": "scale.local"}}), encoding="utf-8")

    cfg = build_config(cfg_path, None, None, 31000, None, None, 4001, None, 1.5)

    assert cfg.weight.host == "scale.local"
    assert cfg.weight.port == 4001
    assert cfg.weight.reconnect_delay == 1.5
    assert cfg.rfid.port == 31000


def test_start_with_missing_config_exits_1(tmp_path: Path) -> None:
    result = runner.invoke(app, ["start", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_start_with_invalid_override_exits_1() -> None:
    result = runner.invoke(app, ["start", "--reconnect-delay=-1"])
    assert result.exit_code == 1


def test_start_exits_1_when_port_in_use(occupied_port) -> None:
    result = runner.invoke(
        app,
        [
            "start",
            "--ws-host", "127.0.0.1",
            "--rfid-host", "127.0.0.1",
            "--rfid-port", str(occupied_port),
            "--rfid-ws-port", "0",
            "--weight-ws-port", "0",
            "--weight-host", "127.0.0.1",
        ],
    )
    assert result.exit_code == 1


def test_format_stats() -> None:
    stats = {
        "running": True,
        "channels": {
            "rfid": {"subscribers": 2, "messages_published": 5, "peers": 1},
            "weight": {"subscribers": 1, "messages_published": 9, "state": "connected"},
        },
    }
    line = format_stats(stats)
    assert "rfid: 2 subscribers, 5 messages, 1 peers" in line
    assert "weight: 1 subscribers, 9 messages, connected" in line
