import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from sessionvault.config.loader import load_config, save_config
from sessionvault.config.schema import (
    Config,
    DailyResetPolicy,
    IdleResetPolicy,
    NeverResetPolicy,
    SessionConfig,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.json")

    assert config.session.reset is None
    assert config.session.reset_by_type is None
    assert config.compaction.mode is None
    assert config.memory.timezone is None


def test_loads_camel_case_file(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "session": {
                    "reset": {"mode": "daily", "atHour": 6},
                    "resetByType": {"group": {"mode": "idle", "idleMinutes": 90}, "direct": {"mode": "never"}},
                },
                "compaction": {"mode": "drop-only", "contextWindowTokens": 128000},
                "memory": {"timezone": "Europe/Berlin"},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.session.reset == DailyResetPolicy(at_hour=6)
    assert isinstance(config.session.reset_by_type["group"], IdleResetPolicy)
    assert config.session.reset_by_type["group"].idle_minutes == 90
    assert isinstance(config.session.reset_by_type["direct"], NeverResetPolicy)
    assert config.compaction.mode == "drop-only"
    assert config.compaction.context_window_tokens == 128000
    assert config.memory.timezone == "Europe/Berlin"


@pytest.mark.parametrize("payload", ["{not json", json.dumps({"compaction": {"maxHistoryShare": 5}})])
def test_invalid_file_falls_back_to_defaults(tmp_path: Path, payload: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(payload, encoding="utf-8")

    assert load_config(path) == Config()


def test_save_then_load_preserves_policies(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = Config.model_validate({"session": {"resetByType": {"thread": {"mode": "idle", "idleMinutes": 15}}}})

    save_config(config, path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["session"]["resetByType"]["thread"] == {"mode": "idle", "idleMinutes": 15, "atHour": 4}
    assert load_config(path) == config


def test_at_hour_range_is_enforced() -> None:
    with pytest.raises(ValidationError):
        DailyResetPolicy(at_hour=24)
    with pytest.raises(ValidationError):
        Config.model_validate({"compaction": {"maxHistoryShare": 1.5}})


def test_malformed_reset_entry_keeps_rest_of_config(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "session": {
                    "reset": {"mode": "never"},
                    "resetByType": {"group": {"mode": "hourly"}, "thread": {"mode": "idle", "idleMinutes": 10}},
                },
                "compaction": {"mode": "drop-only"},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert isinstance(config.session.reset, NeverResetPolicy)
    assert set(config.session.reset_by_type) == {"thread"}
    assert config.compaction.mode == "drop-only"


def test_session_config_drops_malformed_global_reset() -> None:
    session = SessionConfig.model_validate({"reset": {"mode": "daily", "atHour": 30}, "resetByType": "nope"})

    assert session.reset is None
    assert session.reset_by_type is None
