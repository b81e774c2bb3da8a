"""taskledger configuration loading and validation."""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

from taskledger.core.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_ACTIVE_FILE,
    DEFAULT_ARCHIVE_FILE,
    DEFAULT_LOCK_TIMEOUT_MS,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_TASKS_DIR,
    SHARED_CONTEXT_LIMIT_BYTES,
    TASKS_DIR_ENV_VAR,
)
from taskledger.core.exceptions import ConfigurationError


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search start_dir and its parents for the ledger config file."""
    current = Path(start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


@dataclass(frozen=True)
class LedgerConfig:
    """Complete taskledger configuration."""

    tasks_dir: str = DEFAULT_TASKS_DIR
    active_file: str = DEFAULT_ACTIVE_FILE
    archive_file: str = DEFAULT_ARCHIVE_FILE
    lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS
    default_limit: int = DEFAULT_QUERY_LIMIT
    shared_context_limit_bytes: int = SHARED_CONTEXT_LIMIT_BYTES
    base_dir: str = "."

    def __post_init__(self) -> None:
        errors = []
        for name in ("tasks_dir", "active_file", "archive_file"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                errors.append(f"{name} must be a non-empty string")
        for name in ("lock_timeout_ms", "default_limit", "shared_context_limit_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                errors.append(f"{name} must be a positive integer")
        if not errors and self.active_file == self.archive_file:
            errors.append("active_file and archive_file must differ")
        if errors:
            raise ValueError("; ".join(errors))

    @property
    def lock_timeout(self) -> float:
        """Get lock timeout in seconds."""
        return self.lock_timeout_ms / 1000.0

    @property
    def resolved_tasks_dir(self) -> Path:
        """Tasks directory, resolved against the config directory."""
        tasks_dir = Path(self.tasks_dir)
        if tasks_dir.is_absolute():
            return tasks_dir
        return Path(self.base_dir) / tasks_dir

    @property
    def active_path(self) -> Path:
        return self.resolved_tasks_dir / self.active_file

    @property
    def archive_path(self) -> Path:
        return self.resolved_tasks_dir / self.archive_file

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def load(cls, start_dir: Path | None = None) -> Self:
        """Load configuration from the nearest config file or use defaults."""
        start = Path(start_dir or Path.cwd()).resolve()
        config_path = find_config_file(start)
        env_dir = os.environ.get(TASKS_DIR_ENV_VAR)

        if config_path is None:
            data: dict[str, Any] = {"base_dir": str(start)}
        else:
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    f"Invalid JSON in config file: {e}",
                    details={"path": str(config_path)},
                ) from e
            if not isinstance(data, dict):
                raise ConfigurationError(
                    "Config file must contain a JSON object",
                    details={"path": str(config_path)},
                )
            data["base_dir"] = str(config_path.parent)

        if env_dir:
            data["tasks_dir"] = env_dir

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration values: {e}",
                details={"path": str(config_path) if config_path else str(start)},
            ) from e

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary (without the resolved base_dir)."""
        return {
            "tasks_dir": self.tasks_dir,
            "active_file": self.active_file,
            "archive_file": self.archive_file,
            "lock_timeout_ms": self.lock_timeout_ms,
            "default_limit": self.default_limit,
            "shared_context_limit_bytes": self.shared_context_limit_bytes,
        }

    def save(self, base_dir: Path | None = None) -> Path:
        """Save configuration to a file in base_dir (defaults to base_dir field)."""
        config_path = Path(base_dir or self.base_dir) / CONFIG_FILE_NAME
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        return config_path
