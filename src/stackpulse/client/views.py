"""Client-side views: pure functions from a merged collection to what is shown."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from stackpulse.events.schemas import ForumSnapshot, NotificationSnapshot, QuestionSnapshot, UserSnapshot
from stackpulse.qa.ordering import filter_questions_by_search, order_questions


def question_view(order: str = "newest", search: str = "") -> Callable[[Sequence[QuestionSnapshot]], list[QuestionSnapshot]]:
    """Question list view for one of ``newest``, ``unanswered``, ``active``, ``mostViewed``."""
    if order not in ("newest", "unanswered", "active", "mostViewed"):
        raise ValueError(f"Unknown question order: {order}")

    def view(questions: Sequence[QuestionSnapshot]) -> list[QuestionSnapshot]:
        selected = filter_questions_by_search(questions, search) if search else list(questions)
        return order_questions(selected, order)

    return view


def forum_view(text: str = "") -> Callable[[Sequence[ForumSnapshot]], list[ForumSnapshot]]:
    """Forums whose name or description contains ``text`` (case-insensitive)."""
    needle = text.strip().lower()

    def view(forums: Sequence[ForumSnapshot]) -> list[ForumSnapshot]:
        if not needle:
            return list(forums)
        return [f for f in forums if needle in f.name.lower() or needle in f.description.lower()]

    return view


def leaderboard(users: Sequence[UserSnapshot]) -> list[UserSnapshot]:
    """Users ranked by number of badges, most first; ties by username."""
    return sorted(users, key=lambda u: (-len(u.badges), u.username))


def unread_view(username: str) -> Callable[[Sequence[NotificationSnapshot]], list[NotificationSnapshot]]:
    """Unread browser notifications addressed to ``username``, newest first."""

    def view(notifications: Sequence[NotificationSnapshot]) -> list[NotificationSnapshot]:
        unread = [
            n for n in notifications
            if n.target_user == username and n.kind == "browser" and not n.read
        ]
        return sorted(unread, key=lambda n: n.id, reverse=True)

    return view
