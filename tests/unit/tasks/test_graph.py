"""Tests for the dependency graph."""

from typing import Callable

from taskledger.core.constants import RelationType, TaskStatus
from taskledger.tasks.graph import BlockingInfo, DependencyGraph, compute_blocking
from taskledger.tasks.models import Relation


class TestDirectBlocking:
    """Tests for direct blocked-by annotations."""

    def test_unrelated_tasks_are_unblocked(self, make_task: Callable) -> None:
        annotations = compute_blocking([make_task(1), make_task(2)])
        assert annotations[1] == BlockingInfo(task_id=1)
        assert annotations[2] == BlockingInfo(task_id=2)

    def test_incomplete_blocker_blocks(self, make_task: Callable) -> None:
        annotations = compute_blocking([make_task(1), make_task(2, blocked_by=[1])])
        assert annotations[2].is_blocked
        assert annotations[2].blocking_task_ids == [1]
        assert not annotations[2].in_cycle
        assert not annotations[1].is_blocked

    def test_closed_blocker_does_not_block(self, make_task: Callable) -> None:
        tasks = [make_task(1, status=TaskStatus.CLOSED), make_task(2, blocked_by=[1])]
        assert not compute_blocking(tasks)[2].is_blocked

    def test_deleted_blocker_does_not_block(self, make_task: Callable) -> None:
        tasks = [make_task(1, status=TaskStatus.DELETED), make_task(2, blocked_by=[1])]
        assert not compute_blocking(tasks)[2].is_blocked

    def test_in_progress_and_blocked_statuses_block(self, make_task: Callable) -> None:
        tasks = [
            make_task(1, status=TaskStatus.IN_PROGRESS),
            make_task(2, status=TaskStatus.BLOCKED),
            make_task(3, blocked_by=[1, 2]),
        ]
        assert compute_blocking(tasks)[3].blocking_task_ids == [1, 2]

    def test_dangling_reference_ignored(self, make_task: Callable) -> None:
        """A blocker id that is not in the task set cannot block."""
        annotations = compute_blocking([make_task(2, blocked_by=[99])])
        assert not annotations[2].is_blocked

    def test_related_relations_do_not_block(self, make_task: Callable) -> None:
        tasks = [
            make_task(1),
            make_task(2, relations=[Relation(id=1, relates_to=1, as_type=RelationType.RELATED)]),
        ]
        assert not compute_blocking(tasks)[2].is_blocked

    def test_transitive_blockers_are_not_direct(self, make_task: Callable) -> None:
        """Only direct blockers are listed outside cycles."""
        tasks = [make_task(1), make_task(2, blocked_by=[1]), make_task(3, blocked_by=[2])]
        assert compute_blocking(tasks)[3].blocking_task_ids == [2]

    def test_duplicate_relations_listed_once(self, make_task: Callable) -> None:
        tasks = [make_task(1), make_task(2, blocked_by=[1, 1])]
        assert compute_blocking(tasks)[2].blocking_task_ids == [1]


class TestCycles:
    """Tests for cycle detection."""

    def test_two_cycle_rotated_per_member(self, make_task: Callable) -> None:
        tasks = [make_task(1, blocked_by=[2]), make_task(2, blocked_by=[1])]
        annotations = compute_blocking(tasks)
        assert annotations[1].in_cycle
        assert annotations[1].blocking_task_ids == [1, 2]
        assert annotations[2].blocking_task_ids == [2, 1]

    def test_three_cycle_follows_edges(self, make_task: Callable) -> None:
        tasks = [
            make_task(1, blocked_by=[2]),
            make_task(2, blocked_by=[3]),
            make_task(3, blocked_by=[1]),
        ]
        annotations = compute_blocking(tasks)
        assert annotations[1].blocking_task_ids == [1, 2, 3]
        assert annotations[2].blocking_task_ids == [2, 3, 1]
        assert annotations[3].blocking_task_ids == [3, 1, 2]

    def test_self_loop_is_a_cycle(self, make_task: Callable) -> None:
        annotations = compute_blocking([make_task(1, blocked_by=[1])])
        assert annotations[1].in_cycle
        assert annotations[1].is_blocked
        assert annotations[1].blocking_task_ids == [1]

    def test_task_blocked_by_cycle_is_not_in_cycle(self, make_task: Callable) -> None:
        """Reaching a cycle does not make a task a cycle member."""
        tasks = [
            make_task(1, blocked_by=[2]),
            make_task(2, blocked_by=[1]),
            make_task(3, blocked_by=[1]),
        ]
        annotations = compute_blocking(tasks)
        assert not annotations[3].in_cycle
        assert annotations[3].is_blocked
        assert annotations[3].blocking_task_ids == [1]

    def test_cycle_through_closed_task_is_broken(self, make_task: Callable) -> None:
        """A closed task on the loop breaks the cycle."""
        tasks = [
            make_task(1, blocked_by=[2]),
            make_task(2, blocked_by=[1], status=TaskStatus.CLOSED),
        ]
        annotations = compute_blocking(tasks)
        assert not annotations[1].in_cycle
        assert not annotations[1].is_blocked

    def test_every_member_of_overlapping_cycles_found(self, make_task: Callable) -> None:
        """Members reached only through cross edges are still reported."""
        tasks = [
            make_task(1, blocked_by=[2]),
            make_task(2, blocked_by=[1, 3]),
            make_task(3, blocked_by=[2]),
        ]
        cycles = DependencyGraph(tasks).find_cycles()
        assert set(cycles) == {1, 2, 3}
        assert cycles[3] == [3, 2]

    def test_cycle_through(self, make_task: Callable) -> None:
        graph = DependencyGraph([make_task(1, blocked_by=[2]), make_task(2, blocked_by=[1]), make_task(3)])
        assert graph.cycle_through(2) == [2, 1]
        assert graph.cycle_through(3) is None

    def test_long_chain_does_not_recurse(self, make_task: Callable) -> None:
        """Deep chains are handled iteratively."""
        tasks = [make_task(1)] + [make_task(i, blocked_by=[i - 1]) for i in range(2, 3001)]
        annotations = compute_blocking(tasks)
        assert annotations[3000].blocking_task_ids == [2999]
        assert not any(info.in_cycle for info in annotations.values())


class TestDependents:
    """Tests for reverse lookups."""

    def test_dependents_of(self, make_task: Callable) -> None:
        graph = DependencyGraph([
            make_task(1),
            make_task(2, blocked_by=[1]),
            make_task(3, blocked_by=[1], status=TaskStatus.CLOSED),
        ])
        assert graph.dependents_of(1) == [2]
        assert graph.dependents_of(1, incomplete_only=False) == [2, 3]

    def test_to_dict_uses_hyphenated_keys(self) -> None:
        info = BlockingInfo(task_id=1, is_blocked=True, blocking_task_ids=[2])
        assert info.to_dict() == {
            "is-blocked": True,
            "blocking-task-ids": [2],
            "in-cycle": False,
        }
