"""Pure question orderings and search, shared by the API and the client views."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone

from stackpulse.events.schemas import QuestionSnapshot

ORDERS = ("newest", "unanswered", "active", "mostViewed")

_TAG_PATTERN = re.compile(r"\[([^\]]+)\]")


def _ts(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _newest(questions: Iterable[QuestionSnapshot]) -> list[QuestionSnapshot]:
    return sorted(questions, key=lambda q: _ts(q.ask_date_time), reverse=True)


def _last_answered(question: QuestionSnapshot) -> float | None:
    if not question.answers:
        return None
    return max(_ts(a.ans_date_time) for a in question.answers)


def order_questions(questions: Iterable[QuestionSnapshot], order: str = "newest") -> list[QuestionSnapshot]:
    """Return ``questions`` in the given view order. Raises ValueError for unknown orders.

    - newest: by ask time, newest first
    - unanswered: only questions without answers, newest first
    - active: by most recent answer, newest first; unanswered questions last
    - mostViewed: by view count, ties newest first
    """
    newest = _newest(questions)
    if order == "newest":
        return newest
    if order == "unanswered":
        return [q for q in newest if not q.answers]
    if order == "active":
        answered = [q for q in newest if q.answers]
        unanswered = [q for q in newest if not q.answers]
        # Stable sort keeps newest-first among equal answer times
        answered.sort(key=lambda q: _last_answered(q) or 0.0, reverse=True)
        return answered + unanswered
    if order == "mostViewed":
        return sorted(newest, key=lambda q: len(q.views), reverse=True)
    raise ValueError(f"Unknown question order: {order}")


def parse_search(search: str) -> tuple[list[str], list[str]]:
    """Split a search string into ``[tag]`` names and plain keywords."""
    tags = [t.strip().lower() for t in _TAG_PATTERN.findall(search)]
    keywords = [w.lower() for w in _TAG_PATTERN.sub(" ", search).split()]
    return tags, keywords


def filter_questions_by_search(questions: Iterable[QuestionSnapshot], search: str) -> list[QuestionSnapshot]:
    """Keep questions matching any search tag or containing any keyword in title or text."""
    tags, keywords = parse_search(search)
    if not tags and not keywords:
        return list(questions)

    def matches(q: QuestionSnapshot) -> bool:
        if tags and any(t.lower() in tags for t in q.tags):
            return True
        haystack = f"{q.title} {q.text}".lower()
        return any(k in haystack for k in keywords)

    return [q for q in questions if matches(q)]
