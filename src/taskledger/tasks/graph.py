"""
Blocking-dependency graph over a task set.

Builds a directed graph with an edge ``A -> B`` for each ``blocked-by``
relation on task A that targets task B, and derives per-task blocking
annotations from it.

Algorithm Complexity:
- Direct blocking check: O(V + E)
- Cycle detection: O(V + E) using an iterative Tarjan DFS (explicit
  recursion stack) restricted to incomplete tasks
- Cycle path extraction: O(V + E) per cycle member, BFS inside its SCC
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from taskledger.tasks.models import Task


logger = logging.getLogger(__name__)


@dataclass
class BlockingInfo:
    """
    Blocking annotation for one task.

    Attributes:
        task_id: Annotated task
        is_blocked: True if any direct blocker is incomplete or the task is in a cycle
        blocking_task_ids: Incomplete direct blockers, or for a cycle member
            the cycle itself starting at ``task_id``
        in_cycle: True if the task is part of a blocked-by cycle
    """

    task_id: int
    is_blocked: bool = False
    blocking_task_ids: list[int] = field(default_factory=list)
    in_cycle: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "is-blocked": self.is_blocked,
            "blocking-task-ids": list(self.blocking_task_ids),
            "in-cycle": self.in_cycle,
        }


class DependencyGraph:
    """
    Directed blocked-by graph over a set of tasks.

    Edges to ids that are not in the task set are dropped: a dangling
    reference cannot block anything.
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self._tasks: dict[int, Task] = {}
        for task in tasks:
            self._tasks[task.id] = task

        self._edges: dict[int, list[int]] = {}
        for task_id, task in self._tasks.items():
            targets: list[int] = []
            for target in task.blocked_by_ids():
                if target in self._tasks and target not in targets:
                    targets.append(target)
            self._edges[task_id] = targets

    def dependents_of(self, task_id: int, incomplete_only: bool = True) -> list[int]:
        """Tasks that declare ``task_id`` as a blocked-by target."""
        return [
            source for source, targets in self._edges.items()
            if task_id in targets
            and source != task_id
            and (not incomplete_only or self._tasks[source].is_incomplete())
        ]

    # -------------------------------------------------------------------------
    # Annotations
    # -------------------------------------------------------------------------

    def compute(self) -> dict[int, BlockingInfo]:
        """Compute blocking annotations for every task in the graph."""
        annotations: dict[int, BlockingInfo] = {}

        for task_id in self._tasks:
            blockers = [
                target for target in self._edges[task_id]
                if self._tasks[target].is_incomplete()
            ]
            annotations[task_id] = BlockingInfo(
                task_id=task_id,
                is_blocked=bool(blockers),
                blocking_task_ids=blockers,
            )

        cycles = self.find_cycles()
        for task_id, cycle in cycles.items():
            annotations[task_id] = BlockingInfo(
                task_id=task_id,
                is_blocked=True,
                blocking_task_ids=cycle,
                in_cycle=True,
            )

        if cycles:
            logger.info("Blocked-by cycles involve tasks %s", sorted(cycles))

        return annotations

    # -------------------------------------------------------------------------
    # Cycle Detection
    # -------------------------------------------------------------------------

    def find_cycles(self) -> dict[int, list[int]]:
        """
        Find every incomplete task that sits on a blocked-by cycle.

        Returns:
            Mapping of task id to a cycle through it, rotated to start at
            that task and following blocked-by edges in order
        """
        incomplete = {tid for tid, task in self._tasks.items() if task.is_incomplete()}
        edges = {
            tid: [t for t in self._edges[tid] if t in incomplete]
            for tid in incomplete
        }

        cycles: dict[int, list[int]] = {}
        for component in self._strongly_connected(incomplete, edges):
            if len(component) == 1:
                (only,) = component
                if only not in edges[only]:
                    continue
            for task_id in self._ordered(component):
                path = self._cycle_through(task_id, component, edges)
                if path:
                    cycles[task_id] = path
        return cycles

    def cycle_through(self, task_id: int) -> Optional[list[int]]:
        """Return a cycle through ``task_id``, or None if it is not in one."""
        return self.find_cycles().get(task_id)

    def _ordered(self, ids: Iterable[int]) -> list[int]:
        order = {tid: index for index, tid in enumerate(self._tasks)}
        return sorted(ids, key=lambda tid: order[tid])

    def _strongly_connected(
        self,
        nodes: set[int],
        edges: dict[int, list[int]],
    ) -> list[set[int]]:
        """Tarjan's algorithm, iterative so deep chains do not hit the recursion limit."""
        index_of: dict[int, int] = {}
        lowlink: dict[int, int] = {}
        on_stack: set[int] = set()
        stack: list[int] = []
        components: list[set[int]] = []
        counter = 0

        for root in self._ordered(nodes):
            if root in index_of:
                continue

            work: list[tuple[int, int]] = [(root, 0)]
            while work:
                node, child_index = work.pop()
                if child_index == 0:
                    index_of[node] = lowlink[node] = counter
                    counter += 1
                    stack.append(node)
                    on_stack.add(node)

                children = edges[node]
                if child_index < len(children):
                    work.append((node, child_index + 1))
                    child = children[child_index]
                    if child not in index_of:
                        work.append((child, 0))
                    elif child in on_stack:
                        lowlink[node] = min(lowlink[node], index_of[child])
                    continue

                if lowlink[node] == index_of[node]:
                    component: set[int] = set()
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.add(member)
                        if member == node:
                            break
                    components.append(component)

                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])

        return components

    @staticmethod
    def _cycle_through(
        start: int,
        component: set[int],
        edges: dict[int, list[int]],
    ) -> list[int]:
        """Shortest edge-ordered path start -> ... -> start inside a component."""
        if start in edges[start]:
            return [start]

        previous: dict[int, int] = {}
        queue = deque()
        for target in edges[start]:
            if target in component and target not in previous:
                previous[target] = start
                queue.append(target)

        while queue:
            node = queue.popleft()
            for target in edges[node]:
                if target not in component:
                    continue
                if target == start:
                    path = [node]
                    while path[-1] != start:
                        path.append(previous[path[-1]])
                    path.reverse()
                    return path
                if target not in previous:
                    previous[target] = node
                    queue.append(target)
        return []


def compute_blocking(tasks: Iterable[Task]) -> dict[int, BlockingInfo]:
    """Build a graph over ``tasks`` and return its blocking annotations."""
    return DependencyGraph(tasks).compute()
