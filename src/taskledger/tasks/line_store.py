"""
Line store for the active and archive task logs.

Both logs are UTF-8 text files holding one encoded record per line.
Every write goes through a temp-file-then-rename rewrite, so a reader
without the lock sees either the old file or the new one, never a
partially written record. Lines that fail to decode, including lines
that are not valid UTF-8, are carried through rewrites byte for byte so
a corrupt line is reported, not silently dropped.

Mutating callers hold ``LineStore.lock()`` for their whole
read-validate-write sequence. The lock is a ``filelock.FileLock`` on a
sibling lock file; the OS releases it if the process dies.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator, Iterable, Optional

from filelock import FileLock, Timeout

from taskledger.core.constants import (
    DEFAULT_LOCK_TIMEOUT_MS,
    LOCK_FILE_NAME,
    InsertPosition,
)
from taskledger.core.exceptions import ConcurrencyConflict, MalformedRecord, NotFound
from taskledger.tasks.codec import decode, encode, peek_id
from taskledger.tasks.models import Task

logger = logging.getLogger(__name__)

# Undecodable bytes are mapped to lone surrogates on read and back on write
_ENCODING_ERRORS = "surrogateescape"


# =============================================================================
# Read Results
# =============================================================================

@dataclass
class StoredLine:
    """One physical line of a log: the raw text and, if it decoded, the task."""

    raw: str
    task: Optional[Task] = None


@dataclass
class ReadResult:
    """
    Valid tasks of one log plus the lines that failed to decode.

    ``reserved_ids`` holds ids still readable from malformed lines; they
    are never handed out again.
    """

    path: Path
    tasks: list[Task] = field(default_factory=list)
    errors: list[MalformedRecord] = field(default_factory=list)
    reserved_ids: list[int] = field(default_factory=list)


@dataclass
class Snapshot:
    """Consistent view of both logs taken by a single read."""

    active: list[Task] = field(default_factory=list)
    archive: list[Task] = field(default_factory=list)
    errors: list[MalformedRecord] = field(default_factory=list)
    reserved_ids: list[int] = field(default_factory=list)

    @property
    def all_tasks(self) -> list[Task]:
        return self.active + self.archive

    def max_id(self) -> int:
        ids = [t.id for t in self.all_tasks] + self.reserved_ids
        return max(ids, default=0)

    def find_active(self, task_id: int) -> Optional[Task]:
        return next((t for t in self.active if t.id == task_id), None)

    def find_archived(self, task_id: int) -> Optional[Task]:
        return next((t for t in self.archive if t.id == task_id), None)


# =============================================================================
# Line Store
# =============================================================================

class LineStore:
    """
    File-level storage for the active/archive log pair.

    Args:
        active_path: Path of the active log
        archive_path: Path of the archive log
        lock_timeout: Seconds to wait for the lock before giving up
    """

    def __init__(
        self,
        active_path: Path,
        archive_path: Path,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_MS / 1000.0,
    ) -> None:
        self._active_path = Path(active_path)
        self._archive_path = Path(archive_path)
        self._lock_path = self._active_path.parent / LOCK_FILE_NAME
        self._lock_timeout = lock_timeout

    @property
    def active_path(self) -> Path:
        return self._active_path

    @property
    def archive_path(self) -> Path:
        return self._archive_path

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    @contextmanager
    def lock(self) -> Generator[None, None, None]:
        """
        Hold the exclusive lock for the log pair.

        Raises:
            ConcurrencyConflict: If the lock is not acquired within the timeout
        """
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        file_lock = FileLock(str(self._lock_path), timeout=self._lock_timeout)
        try:
            file_lock.acquire()
        except Timeout:
            raise ConcurrencyConflict(
                "Could not acquire task store lock",
                lock_path=self._lock_path,
                timeout=self._lock_timeout,
            ) from None
        try:
            yield
        finally:
            file_lock.release()

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_lines(self, path: Path) -> list[StoredLine]:
        """Read a log as stored lines. Missing files read as empty."""
        path = Path(path)
        if not path.exists():
            return []

        lines = []
        with open(path, "r", encoding="utf-8", errors=_ENCODING_ERRORS) as f:
            for line_number, raw in enumerate(f, start=1):
                raw = raw.rstrip("\r\n")
                if not raw.strip():
                    continue
                try:
                    lines.append(StoredLine(raw=raw, task=decode(raw)))
                except MalformedRecord as e:
                    logger.debug("Carrying malformed line %s:%s verbatim: %s", path, line_number, e)
                    lines.append(StoredLine(raw=raw, task=None))
        return lines

    def read_all(self, path: Path) -> ReadResult:
        """
        Read every valid task from a log.

        Malformed lines are skipped and reported in ``errors``; they never
        hide the rest of the file.
        """
        path = Path(path)
        result = ReadResult(path=path)
        if not path.exists():
            return result

        with open(path, "r", encoding="utf-8", errors=_ENCODING_ERRORS) as f:
            for line_number, raw in enumerate(f, start=1):
                raw = raw.rstrip("\r\n")
                if not raw.strip():
                    continue
                try:
                    result.tasks.append(decode(raw))
                except MalformedRecord as e:
                    located = e.at(path, line_number)
                    logger.warning("Skipping malformed record: %s", located)
                    result.errors.append(located)
                    stranded_id = peek_id(raw)
                    if stranded_id is not None:
                        result.reserved_ids.append(stranded_id)
        return result

    def snapshot(self) -> Snapshot:
        """
        Read both logs.

        If an interrupted move left a task in both logs, only one copy is
        returned: the archived copy when its status is complete, otherwise
        the active copy.
        """
        active = self.read_all(self._active_path)
        archive = self.read_all(self._archive_path)

        archived_ids = {t.id for t in archive.tasks}
        active_ids = {t.id for t in active.tasks}
        duplicates = archived_ids & active_ids

        active_tasks = active.tasks
        archive_tasks = archive.tasks
        if duplicates:
            logger.warning("Tasks present in both logs: %s", sorted(duplicates))
            keep_archived = {
                t.id for t in archive.tasks if t.id in duplicates and t.is_complete()
            }
            active_tasks = [
                t for t in active.tasks if t.id not in keep_archived
            ]
            archive_tasks = [
                t for t in archive.tasks if t.id not in duplicates or t.id in keep_archived
            ]

        return Snapshot(
            active=active_tasks,
            archive=archive_tasks,
            errors=active.errors + archive.errors,
            reserved_ids=active.reserved_ids + archive.reserved_ids,
        )

    def recover(self) -> list[int]:
        """
        Remove stale duplicates left by an interrupted move.

        Must be called with the lock held. Returns the repaired task ids.
        """
        snapshot = self.snapshot()
        active_ids = {t.id for t in snapshot.active}
        archive_ids = {t.id for t in snapshot.archive}

        repaired = []
        for path, keep_ids in (
            (self._active_path, active_ids),
            (self._archive_path, archive_ids),
        ):
            lines = self.read_lines(path)
            kept = [
                line for line in lines
                if line.task is None or line.task.id in keep_ids
            ]
            if len(kept) != len(lines):
                repaired.extend(
                    line.task.id for line in lines
                    if line.task is not None and line.task.id not in keep_ids
                )
                self._write_lines(path, [line.raw for line in kept])

        if repaired:
            logger.warning("Recovered interrupted move for tasks %s", sorted(repaired))
        return sorted(repaired)

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def append(self, path: Path, task: Task) -> None:
        """Add a task at the end of a log."""
        self._insert(path, task, InsertPosition.END)

    def prepend(self, path: Path, task: Task) -> None:
        """Add a task at the start of a log."""
        self._insert(path, task, InsertPosition.START)

    def rewrite(self, path: Path, tasks: Iterable[Task]) -> None:
        """Atomically replace a log with exactly the given tasks."""
        self._write_lines(path, [encode(task) for task in tasks])

    def replace(self, path: Path, task: Task) -> None:
        """
        Replace the record with the same id, keeping its position.

        Raises:
            NotFound: If no record with that id is in the log
        """
        lines = self.read_lines(path)
        for index, line in enumerate(lines):
            if line.task is not None and line.task.id == task.id:
                lines[index] = StoredLine(raw=encode(task), task=task)
                self._write_lines(path, [line.raw for line in lines])
                return
        raise NotFound(f"Task {task.id} not found in {Path(path).name}", task_id=task.id)

    def remove(self, path: Path, task_ids: Iterable[int]) -> None:
        """
        Remove records by id.

        Raises:
            NotFound: If any id is not in the log
        """
        ids = set(task_ids)
        lines = self.read_lines(path)
        present = {line.task.id for line in lines if line.task is not None}
        missing = sorted(ids - present)
        if missing:
            raise NotFound(
                f"Task {missing[0]} not found in {Path(path).name}",
                task_id=missing[0],
            )
        kept = [
            line.raw for line in lines
            if line.task is None or line.task.id not in ids
        ]
        self._write_lines(path, kept)

    def move(
        self,
        tasks: Task | list[Task],
        from_path: Path,
        to_path: Path,
        at: InsertPosition = InsertPosition.END,
    ) -> None:
        """
        Move records from one log to another.

        The destination is written and fsynced before the source is
        rewritten, so a crash leaves the task in the destination (and
        possibly still in the source, which ``snapshot`` and ``recover``
        resolve) but never in neither log. The records written are the
        given task objects, so a move can carry a status change.
        """
        moving = [tasks] if isinstance(tasks, Task) else list(tasks)
        if not moving:
            return

        source_lines = self.read_lines(from_path)
        source_ids = {line.task.id for line in source_lines if line.task is not None}
        for task in moving:
            if task.id not in source_ids:
                raise NotFound(
                    f"Task {task.id} not found in {Path(from_path).name}",
                    task_id=task.id,
                )

        moving_ids = {task.id for task in moving}
        dest_lines = [
            line.raw for line in self.read_lines(to_path)
            if line.task is None or line.task.id not in moving_ids
        ]
        encoded = [encode(task) for task in moving]
        if at == InsertPosition.START:
            dest_lines = encoded + dest_lines
        else:
            dest_lines = dest_lines + encoded
        self._write_lines(to_path, dest_lines)

        self._write_lines(
            from_path,
            [
                line.raw for line in source_lines
                if line.task is None or line.task.id not in moving_ids
            ],
        )

    def _insert(self, path: Path, task: Task, at: InsertPosition) -> None:
        raw = [line.raw for line in self.read_lines(path)]
        encoded = encode(task)
        if at == InsertPosition.START:
            raw.insert(0, encoded)
        else:
            raw.append(encoded)
        self._write_lines(path, raw)

    def _write_lines(self, path: Path, lines: list[str]) -> None:
        """Write lines to a temp file in the same directory, fsync, rename."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(
                fd, "w", encoding="utf-8", errors=_ENCODING_ERRORS, newline="\n"
            ) as tmp_file:
                for line in lines:
                    tmp_file.write(line)
                    tmp_file.write("\n")
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            tmp_path.replace(path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        self._fsync_dir(path.parent)

    @staticmethod
    def _fsync_dir(directory: Path) -> None:
        try:
            dir_fd = os.open(str(directory), os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            logger.debug("Directory fsync not supported for %s", directory)
        finally:
            os.close(dir_fd)
