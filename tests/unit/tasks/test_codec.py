"""Tests for the record codec."""

import json

import pytest

from taskledger.core.constants import RelationType, TaskStatus, TaskType
from taskledger.core.exceptions import MalformedRecord
from taskledger.tasks.codec import decode, encode, peek_id, task_from_dict
from taskledger.tasks.models import Relation, Task


class TestEncode:
    """Tests for encoding tasks to lines."""

    def test_encode_is_single_line(self) -> None:
        """Newlines inside fields are escaped, never written raw."""
        task = Task(id=1, title="Multi\nline", description="a\nb\r\nc")
        line = encode(task)
        assert "\n" not in line
        assert "\r" not in line

    def test_encode_uses_hyphenated_keys(self) -> None:
        """Optional fields and relation keys use their on-disk names."""
        task = Task(
            id=3,
            title="Child",
            parent_id=1,
            shared_context=["Task 2: note"],
            relations=[Relation(id=1, relates_to=2, as_type=RelationType.BLOCKED_BY)],
        )
        data = json.loads(encode(task))
        assert data["parent-id"] == 1
        assert data["shared-context"] == ["Task 2: note"]
        assert data["relations"] == [{"id": 1, "relates-to": 2, "as-type": "blocked-by"}]

    def test_encode_omits_unset_optional_fields(self) -> None:
        """parent-id and shared-context are absent when unset."""
        data = json.loads(encode(Task(id=1, title="Plain")))
        assert "parent-id" not in data
        assert "shared-context" not in data

    def test_encode_keeps_non_ascii(self) -> None:
        """Non-ASCII text is written as UTF-8, not escaped."""
        line = encode(Task(id=1, title="Ünïcödé タスク"))
        assert "タスク" in line


class TestDecode:
    """Tests for decoding lines to tasks."""

    def test_decode_sample_line(self, sample_line: str) -> None:
        """A stored line decodes to the expected task."""
        task = decode(sample_line)
        assert task.id == 1
        assert task.title == "Write parser"
        assert task.status == TaskStatus.OPEN
        assert task.type == TaskType.TASK
        assert task.category == "simple"
        assert task.parent_id is None
        assert task.shared_context is None

    def test_round_trip_preserves_every_field(self) -> None:
        """Decoding an encoded task yields an equal task."""
        task = Task(
            id=7,
            title="Ünïcödé title",
            status=TaskStatus.IN_PROGRESS,
            description="line one\nline two",
            design="use a queue",
            category="large",
            type=TaskType.STORY,
            meta={"priority": "high", "owner": "agent"},
            relations=[
                Relation(id=1, relates_to=3, as_type=RelationType.BLOCKED_BY),
                Relation(id=2, relates_to=4, as_type=RelationType.DISCOVERED_DURING),
            ],
            parent_id=2,
            shared_context=["Task 8: newest", "Task 6: oldest"],
        )
        assert decode(encode(task)) == task

    def test_round_trip_empty_collections(self) -> None:
        """Empty meta and relations survive a round trip."""
        task = Task(id=1, title="Empty", meta={}, relations=[], shared_context=[])
        decoded = decode(encode(task))
        assert decoded.meta == {}
        assert decoded.relations == []
        assert decoded.shared_context == []

    def test_invalid_json(self) -> None:
        """Unparseable text raises MalformedRecord."""
        with pytest.raises(MalformedRecord) as exc_info:
            decode("{not json")
        assert "Invalid JSON" in exc_info.value.message

    def test_non_object_record(self) -> None:
        """A JSON value that is not an object is rejected."""
        with pytest.raises(MalformedRecord):
            decode("[1, 2, 3]")

    def test_missing_required_field(self, sample_line: str) -> None:
        """Every required field must be present."""
        data = json.loads(sample_line)
        del data["design"]
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "design"

    def test_invalid_status_names_allowed_values(self, sample_line: str) -> None:
        """Out-of-domain enum values report the allowed set."""
        data = json.loads(sample_line)
        data["status"] = "done"
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "status"
        assert exc_info.value.value == "done"
        assert "in-progress" in exc_info.value.message

    def test_boolean_id_rejected(self, sample_line: str) -> None:
        """JSON booleans are not accepted as integer ids."""
        data = json.loads(sample_line)
        data["id"] = True
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "id"

    def test_meta_values_must_be_strings(self, sample_line: str) -> None:
        """meta is a string-to-string map."""
        data = json.loads(sample_line)
        data["meta"] = {"priority": 1}
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "meta"

    def test_invalid_relation_type(self, sample_line: str) -> None:
        """Relation fields are validated with an indexed field name."""
        data = json.loads(sample_line)
        data["relations"] = [{"id": 1, "relates-to": 2, "as-type": "depends-on"}]
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "relations[0].as-type"

    def test_relation_missing_field(self, sample_line: str) -> None:
        data = json.loads(sample_line)
        data["relations"] = [{"id": 1, "as-type": "blocked-by"}]
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "relations[0].relates-to"

    def test_shared_context_must_be_string_list(self, sample_line: str) -> None:
        data = json.loads(sample_line)
        data["shared-context"] = "not a list"
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "shared-context"

    def test_located_error_reports_position(self) -> None:
        """at() attaches path and line number to the error details."""
        with pytest.raises(MalformedRecord) as exc_info:
            decode("garbage")
        located = exc_info.value.at("tasks.jsonl", 4)
        assert located.line == 4
        assert "line=4" in str(located)

    def test_undecodable_bytes_rejected(self, sample_line: str) -> None:
        """A line read with surrogate escapes is reported, not parsed."""
        raw = sample_line.replace("Write parser", "caf\udce9")
        with pytest.raises(MalformedRecord) as exc_info:
            decode(raw)
        assert "UTF-8" in exc_info.value.message

    def test_workflow_fields_round_trip(self) -> None:
        task = Task(
            id=3,
            title="Ship it",
            session_events=[
                {"event-type": "user-prompt", "timestamp": "2025-01-15T10:00:00Z", "content": "go"},
                {"event-type": "compaction", "timestamp": "2025-01-15T10:05:00Z", "trigger": "auto"},
            ],
            code_reviewed="2025-01-15T10:30:00Z",
            pr_num=42,
        )
        data = json.loads(encode(task))
        assert data["pr-num"] == 42
        assert data["code-reviewed"] == "2025-01-15T10:30:00Z"
        assert data["session-events"][1]["trigger"] == "auto"
        assert decode(encode(task)) == task

    def test_code_reviewed_must_be_utc(self, sample_line: str) -> None:
        data = json.loads(sample_line)
        data["code-reviewed"] = "2025-01-15T10:30:00+02:00"
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "code-reviewed"

    def test_session_event_type_checked(self, sample_line: str) -> None:
        data = json.loads(sample_line)
        data["session-events"] = [{"event-type": "reboot", "timestamp": "2025-01-15T10:00:00Z"}]
        with pytest.raises(MalformedRecord) as exc_info:
            task_from_dict(data)
        assert exc_info.value.field == "session-events[0]"


class TestPeekId:
    """Tests for reading the id of a line that failed to decode."""

    def test_invalid_record_keeps_id(self) -> None:
        assert peek_id('{"id": 50, "status": "bogus"}') == 50

    def test_no_id_available(self) -> None:
        assert peek_id("{broken") is None
        assert peek_id("[1, 2]") is None
        assert peek_id('{"id": "7"}') is None
        assert peek_id('{"id": true}') is None
