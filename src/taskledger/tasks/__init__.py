"""Task records, storage, dependency graph, queries and lifecycle."""
from taskledger.tasks.codec import decode, encode, task_from_dict
from taskledger.tasks.graph import BlockingInfo, DependencyGraph, compute_blocking
from taskledger.tasks.lifecycle import MutationResult, TaskLedger, next_id
from taskledger.tasks.line_store import LineStore, ReadResult, Snapshot, StoredLine
from taskledger.tasks.models import Relation, Task
from taskledger.tasks.query import (
    QueryEngine,
    QueryMetadata,
    QueryResult,
    TaskFilter,
)

__all__ = [
    "decode",
    "encode",
    "task_from_dict",
    "BlockingInfo",
    "DependencyGraph",
    "compute_blocking",
    "MutationResult",
    "TaskLedger",
    "next_id",
    "LineStore",
    "ReadResult",
    "Snapshot",
    "StoredLine",
    "Relation",
    "Task",
    "QueryEngine",
    "QueryMetadata",
    "QueryResult",
    "TaskFilter",
]
