"""taskledger custom exception hierarchy."""

from pathlib import Path
from typing import Any


class LedgerError(Exception):
    """Base exception for all taskledger errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(LedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class MalformedRecord(LedgerError):
    """Raised when a stored line cannot be decoded into a task."""

    def __init__(
        self,
        message: str,
        line: int | None = None,
        path: Path | None = None,
        field: str | None = None,
        value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if path is not None:
            details["path"] = str(path)
        if line is not None:
            details["line"] = line
        if field is not None:
            details["field"] = field
            details["value"] = value
        super().__init__(message, details)
        self.line = line
        self.path = path
        self.field = field
        self.value = value

    def at(self, path: Path, line: int) -> "MalformedRecord":
        """Return a copy located at a file position."""
        return MalformedRecord(
            self.message,
            line=line,
            path=path,
            field=self.field,
            value=self.value,
        )


class NotFound(LedgerError):
    """Raised when an id, title or pattern matches no task."""

    def __init__(
        self,
        message: str,
        task_id: int | None = None,
        title: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if task_id is not None:
            details["task_id"] = task_id
        if title is not None:
            details["title"] = title
        super().__init__(message, details)
        self.task_id = task_id
        self.title = title


class AmbiguousMatch(LedgerError):
    """Raised when a lookup that must be unique matches several tasks."""

    def __init__(
        self,
        message: str,
        matching_ids: list[int] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["matching_ids"] = list(matching_ids or [])
        super().__init__(message, details)
        self.matching_ids = list(matching_ids or [])


class ValidationError(LedgerError):
    """Raised when task fields are missing or outside their domain."""

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if errors:
            details["errors"] = "; ".join(errors)
        super().__init__(message, details)
        self.errors = errors or []


class CycleDetected(LedgerError):
    """Raised when a relation change would close a blocked-by cycle."""

    def __init__(
        self,
        message: str,
        cycle: list[int] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if cycle:
            details["cycle"] = " -> ".join(str(i) for i in cycle)
        super().__init__(message, details)
        self.cycle = cycle or []


class ConcurrencyConflict(LedgerError):
    """Raised when the store lock cannot be acquired in time."""

    def __init__(
        self,
        message: str,
        lock_path: Path | None = None,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if lock_path is not None:
            details["lock_path"] = str(lock_path)
        if timeout is not None:
            details["timeout"] = timeout
        super().__init__(message, details)
        self.lock_path = lock_path
        self.timeout = timeout


class BlockedDependentsExist(LedgerError):
    """Raised when deleting a task would silently unblock other tasks."""

    def __init__(
        self,
        message: str,
        task_id: int | None = None,
        dependents: list[int] | None = None,
        children: list[int] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if task_id is not None:
            details["task_id"] = task_id
        if dependents:
            details["dependents"] = list(dependents)
        if children:
            details["children"] = list(children)
        super().__init__(message, details)
        self.task_id = task_id
        self.dependents = list(dependents or [])
        self.children = list(children or [])
