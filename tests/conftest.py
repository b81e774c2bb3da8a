"""Pytest configuration and fixtures for taskledger tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from taskledger.core.config import LedgerConfig
from taskledger.core.constants import TASKS_DIR_ENV_VAR
from taskledger.tasks.lifecycle import TaskLedger
from taskledger.tasks.line_store import LineStore
from taskledger.tasks.models import Relation, Task


@pytest.fixture(autouse=True)
def _clear_tasks_dir_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's TASKLEDGER_DIR from leaking into tests."""
    monkeypatch.delenv(TASKS_DIR_ENV_VAR, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def tasks_dir(temp_dir: Path) -> Path:
    """Create the tasks directory."""
    path = temp_dir / ".taskledger"
    path.mkdir()
    return path


@pytest.fixture
def config(tasks_dir: Path) -> LedgerConfig:
    """Configuration rooted at the temporary tasks directory."""
    return LedgerConfig(tasks_dir=str(tasks_dir), lock_timeout_ms=2000)


@pytest.fixture
def store(config: LedgerConfig) -> LineStore:
    """Line store over the temporary logs."""
    return LineStore(config.active_path, config.archive_path, lock_timeout=config.lock_timeout)


@pytest.fixture
def ledger(config: LedgerConfig) -> TaskLedger:
    """Task ledger over the temporary logs."""
    return TaskLedger(config)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for tasks with sensible defaults."""

    def _make(task_id: int, title: str | None = None, **fields: Any) -> Task:
        blocked_by = fields.pop("blocked_by", [])
        relations = fields.pop("relations", [])
        relations = list(relations) + [
            Relation(id=index, relates_to=target, as_type="blocked-by")
            for index, target in enumerate(blocked_by, start=len(relations) + 1)
        ]
        return Task(
            id=task_id,
            title=title or f"Task {task_id}",
            relations=relations,
            **fields,
        )

    return _make


@pytest.fixture
def sample_line() -> str:
    """A well-formed record line as stored on disk."""
    return (
        '{"id":1,"status":"open","title":"Write parser","description":"",'
        '"design":"","category":"simple","type":"task","meta":{},"relations":[]}'
    )
