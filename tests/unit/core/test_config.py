"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from taskledger.core.config import LedgerConfig, find_config_file
from taskledger.core.constants import CONFIG_FILE_NAME, TASKS_DIR_ENV_VAR
from taskledger.core.exceptions import ConfigurationError


class TestLedgerConfig:
    """Tests for LedgerConfig values."""

    def test_defaults(self) -> None:
        config = LedgerConfig()
        assert config.tasks_dir == ".taskledger"
        assert config.active_file == "tasks.jsonl"
        assert config.archive_file == "complete.jsonl"
        assert config.default_limit == 5
        assert config.lock_timeout == 30.0
        assert config.shared_context_limit_bytes == 50 * 1024

    def test_relative_tasks_dir_resolves_against_base(self, temp_dir: Path) -> None:
        config = LedgerConfig(base_dir=str(temp_dir))
        assert config.active_path == temp_dir / ".taskledger" / "tasks.jsonl"

    def test_absolute_tasks_dir_used_as_is(self, temp_dir: Path) -> None:
        config = LedgerConfig(tasks_dir=str(temp_dir / "elsewhere"), base_dir="/ignored")
        assert config.archive_path == temp_dir / "elsewhere" / "complete.jsonl"

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            LedgerConfig(default_limit=0)
        with pytest.raises(ValueError):
            LedgerConfig(active_file="same.jsonl", archive_file="same.jsonl")

    def test_from_dict_rejects_unknown_keys(self) -> None:
        with pytest.raises(ValueError):
            LedgerConfig.from_dict({"tasks_dir": "x", "colour": "blue"})

    def test_to_dict_excludes_base_dir(self) -> None:
        assert "base_dir" not in LedgerConfig().to_dict()


class TestLoad:
    """Tests for loading configuration from disk and environment."""

    def test_load_without_file_uses_defaults(self, temp_dir: Path) -> None:
        config = LedgerConfig.load(temp_dir)
        assert config.resolved_tasks_dir == temp_dir.resolve() / ".taskledger"

    def test_save_and_load_round_trip(self, temp_dir: Path) -> None:
        LedgerConfig(tasks_dir="tracking", default_limit=10).save(temp_dir)
        config = LedgerConfig.load(temp_dir)
        assert config.tasks_dir == "tracking"
        assert config.default_limit == 10

    def test_config_found_in_parent_directory(self, temp_dir: Path) -> None:
        LedgerConfig(tasks_dir="tracking").save(temp_dir)
        nested = temp_dir / "src" / "pkg"
        nested.mkdir(parents=True)

        assert find_config_file(nested) == (temp_dir / CONFIG_FILE_NAME).resolve()
        config = LedgerConfig.load(nested)
        assert config.resolved_tasks_dir == temp_dir.resolve() / "tracking"

    def test_env_overrides_tasks_dir(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(TASKS_DIR_ENV_VAR, str(temp_dir / "from-env"))
        config = LedgerConfig.load(temp_dir)
        assert config.resolved_tasks_dir == temp_dir / "from-env"

    def test_invalid_json_raises_configuration_error(self, temp_dir: Path) -> None:
        (temp_dir / CONFIG_FILE_NAME).write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            LedgerConfig.load(temp_dir)
        assert exc_info.value.details["path"].endswith(CONFIG_FILE_NAME)

    def test_non_object_config_rejected(self, temp_dir: Path) -> None:
        (temp_dir / CONFIG_FILE_NAME).write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            LedgerConfig.load(temp_dir)

    def test_invalid_values_raise_configuration_error(self, temp_dir: Path) -> None:
        (temp_dir / CONFIG_FILE_NAME).write_text(
            json.dumps({"lock_timeout_ms": -1}), encoding="utf-8"
        )
        with pytest.raises(ConfigurationError):
            LedgerConfig.load(temp_dir)
