"""Client views over merged collections."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from stackpulse.client.views import forum_view, leaderboard, question_view, unread_view
from stackpulse.events.schemas import ForumSnapshot, NotificationSnapshot, QuestionSnapshot, UserSnapshot

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _q(question_id: int, title: str, tags=()) -> QuestionSnapshot:
    return QuestionSnapshot(
        id=question_id, title=title, text="body", tags=tags, asked_by="a", ask_date_time=T0.replace(day=question_id),
    )


class TestQuestionView:
    def test_newest_with_search(self):
        view = question_view("newest", "[python] async")
        questions = [_q(1, "Async in rust"), _q(2, "Sorting", tags=("python",)), _q(3, "Unrelated")]
        assert [q.id for q in view(questions)] == [2, 1]

    def test_unknown_order(self):
        with pytest.raises(ValueError):
            question_view("hottest")


class TestForumView:
    def test_matches_name_or_description(self):
        forums = [
            ForumSnapshot(id=1, name="Python", created_by="m", created_at=T0),
            ForumSnapshot(id=2, name="Rust", description="systems, not python", created_by="m", created_at=T0),
            ForumSnapshot(id=3, name="Go", created_by="m", created_at=T0),
        ]
        assert [f.id for f in forum_view("PYTHON")(forums)] == [1, 2]
        assert len(forum_view("")(forums)) == 3


def test_leaderboard_by_badge_count_then_name():
    users = [
        UserSnapshot(username="carol", date_joined=T0, badges=("a",)),
        UserSnapshot(username="bob", date_joined=T0, badges=("a", "b")),
        UserSnapshot(username="alice", date_joined=T0, badges=("c",)),
    ]
    assert [u.username for u in leaderboard(users)] == ["bob", "alice", "carol"]


def test_unread_view_keeps_own_unread_browser_notifications():
    def n(nid, **kwargs):
        kwargs.setdefault("target_user", "alice")
        return NotificationSnapshot(id=nid, title="t", created_at=T0, **kwargs)

    notifications = [n(1), n(2, read=True), n(3, kind="email"), n(4, target_user="bob"), n(5)]
    assert [x.id for x in unread_view("alice")(notifications)] == [5, 1]
