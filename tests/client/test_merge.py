"""Pure merge functions: replace-in-place, prepend, version gate, absorbing delete."""

from __future__ import annotations

from datetime import datetime, timezone

from stackpulse.client.store import by_username, merge_created_or_updated, merge_deleted
from stackpulse.events.schemas import QuestionSnapshot, UserSnapshot

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _q(question_id: int, title: str = "t", version: int = 1) -> QuestionSnapshot:
    return QuestionSnapshot(id=question_id, title=title, text="x", asked_by="a", ask_date_time=T0, version=version)


class TestMergeCreatedOrUpdated:
    def test_prepends_new(self):
        merged = merge_created_or_updated([_q(1), _q(2)], _q(3))
        assert [q.id for q in merged] == [3, 1, 2]

    def test_replaces_in_place(self):
        held = [_q(1), _q(2, "old")]
        merged = merge_created_or_updated(held, _q(2, "new", version=2))
        assert [q.id for q in merged] == [1, 2]
        assert merged[1].title == "new"

    def test_idempotent(self):
        update = _q(2, "new", version=2)
        once = merge_created_or_updated([_q(1), _q(2)], update)
        twice = merge_created_or_updated(once, update)
        assert once == twice

    def test_stale_version_ignored(self):
        held = [_q(1, "current", version=3)]
        merged = merge_created_or_updated(held, _q(1, "stale", version=2))
        assert merged[0].title == "current"

    def test_equal_version_replaces(self):
        merged = merge_created_or_updated([_q(1, "a", version=2)], _q(1, "b", version=2))
        assert merged[0].title == "b"

    def test_input_untouched(self):
        held = [_q(1)]
        merge_created_or_updated(held, _q(2))
        assert len(held) == 1

    def test_custom_identity(self):
        alice = UserSnapshot(username="alice", date_joined=T0)
        renamed = alice.model_copy(update={"biography": "hi", "version": 2})
        merged = merge_created_or_updated([alice], renamed, key=by_username)
        assert merged == [renamed]


class TestMergeDeleted:
    def test_removes_matching(self):
        assert [q.id for q in merge_deleted([_q(1), _q(2)], _q(1))] == [2]

    def test_absent_is_noop(self):
        held = [_q(1), _q(2)]
        assert merge_deleted(held, _q(9)) == held

    def test_absorbing(self):
        once = merge_deleted([_q(1), _q(2)], _q(2))
        assert merge_deleted(once, _q(2)) == once
