"""Client reconciliation store.

Each store holds a read-only projection of one entity collection and folds
update payloads from the live socket into it. Merges are keyed by identity
(``id``, or ``username`` for users) and gated by the per-entity ``version``:
a snapshot older than the one held is dropped, an equal one replaces it.

The visible list is recomputed from the merged collection by the active view
after every merge; ordering is never carried by an event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from stackpulse.events.schemas import (
    AnswerSnapshot,
    AnswerUpdatePayload,
    ForumSnapshot,
    ForumUpdatePayload,
    NotificationSnapshot,
    NotificationUpdatePayload,
    QuestionSnapshot,
    QuestionUpdatePayload,
    Snapshot,
    UserSnapshot,
    UserUpdatePayload,
)
from stackpulse.events.topics import Topic

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Snapshot)
P = TypeVar("P", bound=BaseModel)

KeyFunc = Callable[[Any], Hashable]
View = Callable[[Sequence[Any]], list[Any]]


class UnknownUpdateTypeError(ValueError):
    """An update payload carried a change type the handler does not know."""

    def __init__(self, topic: str, change: object) -> None:
        self.topic = topic
        self.change = change
        super().__init__(f"Unknown {topic} type: {change!r}")


def by_id(entity: Any) -> Hashable:
    return entity.id


def by_username(entity: Any) -> Hashable:
    return entity.username


def _version(entity: Any) -> int:
    return getattr(entity, "version", 0)


def merge_created_or_updated(collection: Sequence[S], entity: S, key: KeyFunc = by_id) -> list[S]:
    """Replace the element with the same identity in place, or prepend ``entity``.

    Idempotent. A held element with a newer version wins over ``entity``.
    """
    ident = key(entity)
    merged = list(collection)
    for i, held in enumerate(merged):
        if key(held) == ident:
            if _version(held) > _version(entity):
                return merged
            merged[i] = entity
            return merged
    merged.insert(0, entity)
    return merged


def merge_deleted(collection: Sequence[S], entity: S, key: KeyFunc = by_id) -> list[S]:
    """Drop the element with the same identity as ``entity``. No-op when absent."""
    ident = key(entity)
    return [held for held in collection if key(held) != ident]


def _validate(
    payload: Mapping[str, Any] | P,
    model: type[P],
    topic: Topic,
    allowed: tuple[str, ...],
    default: str | None = None,
) -> P:
    """Check the change type first so unknown types surface as such, not as a schema error.

    ``default`` stands in for a payload that carries no ``type`` at all.
    """
    change = payload.type if isinstance(payload, BaseModel) else payload.get("type", default)
    if change not in allowed:
        raise UnknownUpdateTypeError(topic.value, change)
    if isinstance(payload, model):
        return payload
    return model.model_validate(payload)


class CollectionStore(Generic[S]):
    """An identity-keyed collection with tombstones and a recomputed view."""

    def __init__(self, key: KeyFunc = by_id, view: View | None = None) -> None:
        self._key = key
        self._items: list[S] = []
        # identity -> version carried by the delete
        self._tombstones: dict[Hashable, int] = {}
        self._view: View = view or list
        self._visible: list[S] = []
        self._listeners: list[Callable[[list[S]], None]] = []

    @property
    def items(self) -> list[S]:
        return list(self._items)

    @property
    def visible(self) -> list[S]:
        return list(self._visible)

    def get(self, ident: Hashable) -> S | None:
        for held in self._items:
            if self._key(held) == ident:
                return held
        return None

    def on_change(self, listener: Callable[[list[S]], None]) -> None:
        self._listeners.append(listener)

    def set_view(self, view: View) -> None:
        self._view = view
        self._recompute()

    def upsert(self, entity: S, *, created: bool = False) -> bool:
        """Merge a created or updated snapshot. Returns whether the collection changed."""
        ident = self._key(entity)
        if created:
            self._tombstones.pop(ident, None)
        elif ident in self._tombstones and _version(entity) < self._tombstones[ident]:
            logger.debug("Dropping update for deleted entity %s", ident)
            return False
        merged = merge_created_or_updated(self._items, entity, self._key)
        if merged == self._items:
            return False
        self._items = merged
        self._recompute()
        return True

    def remove(self, entity: S) -> bool:
        ident = self._key(entity)
        self._tombstones[ident] = max(_version(entity), self._tombstones.get(ident, 0))
        merged = merge_deleted(self._items, entity, self._key)
        if len(merged) == len(self._items):
            return False
        self._items = merged
        self._recompute()
        return True

    def replace(self, ident: Hashable, entity: S) -> None:
        """Swap the held element with identity ``ident`` for ``entity`` without a version check."""
        self._items = [entity if self._key(held) == ident else held for held in self._items]
        self._recompute()

    def refetch(self, entities: Sequence[S]) -> None:
        """Replace the whole collection with a fresh REST snapshot."""
        self._items = list(entities)
        self._tombstones.clear()
        self._recompute()

    def _recompute(self) -> None:
        self._visible = self._view(self._items)
        for listener in self._listeners:
            listener(self.visible)

    def __len__(self) -> int:
        return len(self._items)


class QuestionStore(CollectionStore[QuestionSnapshot]):
    """Questions, with their answers and comments folded in."""

    topics = (Topic.QUESTION, Topic.ANSWER, Topic.COMMENT)

    def handle(self, topic: str, data: Mapping[str, Any]) -> None:
        if topic == Topic.QUESTION:
            self.apply_question_update(data)
        elif topic == Topic.ANSWER:
            self.apply_answer_update(data)
        elif topic == Topic.COMMENT:
            self.apply_comment_update(data)

    def apply_question_update(self, data: Mapping[str, Any] | QuestionUpdatePayload) -> None:
        payload = _validate(data, QuestionUpdatePayload, Topic.QUESTION, ("created", "updated", "deleted"))
        if payload.type == "deleted":
            self.remove(payload.question)
        else:
            self.upsert(payload.question, created=payload.type == "created")

    def apply_answer_update(self, data: Mapping[str, Any] | AnswerUpdatePayload) -> None:
        payload = _validate(data, AnswerUpdatePayload, Topic.ANSWER, ("created",), default="created")
        question = self.get(payload.question_id)
        if question is None:
            return
        answers = merge_created_or_updated(question.answers, payload.answer)
        self.replace(question.id, question.model_copy(update={"answers": tuple(answers)}))

    def apply_comment_update(self, data: Mapping[str, Any]) -> None:
        change = data.get("type")
        if change == "question":
            question = QuestionSnapshot.model_validate(data["result"])
            if self.get(question.id) is not None:
                self.upsert(question)
        elif change == "answer":
            self._merge_answer(AnswerSnapshot.model_validate(data["result"]))
        else:
            raise UnknownUpdateTypeError(Topic.COMMENT.value, change)

    def _merge_answer(self, answer: AnswerSnapshot) -> None:
        for question in self._items:
            if any(a.id == answer.id for a in question.answers):
                answers = merge_created_or_updated(question.answers, answer)
                self.replace(question.id, question.model_copy(update={"answers": tuple(answers)}))
                return


class ForumStore(CollectionStore[ForumSnapshot]):
    topics = (Topic.FORUM,)

    def handle(self, topic: str, data: Mapping[str, Any]) -> None:
        if topic == Topic.FORUM:
            self.apply_forum_update(data)

    def apply_forum_update(self, data: Mapping[str, Any] | ForumUpdatePayload) -> None:
        payload = _validate(data, ForumUpdatePayload, Topic.FORUM, ("created", "updated", "deleted"))
        if payload.type == "deleted":
            self.remove(payload.forum)
        else:
            self.upsert(payload.forum, created=payload.type == "created")


class UserStore(CollectionStore[UserSnapshot]):
    topics = (Topic.USER,)

    def __init__(self, view: View | None = None) -> None:
        super().__init__(key=by_username, view=view)

    def handle(self, topic: str, data: Mapping[str, Any]) -> None:
        if topic == Topic.USER:
            self.apply_user_update(data)

    def apply_user_update(self, data: Mapping[str, Any] | UserUpdatePayload) -> None:
        payload = _validate(data, UserUpdatePayload, Topic.USER, ("created", "updated", "deleted"))
        if payload.type == "deleted":
            self.remove(payload.user)
        else:
            self.upsert(payload.user, created=payload.type == "created")


class NotificationStore(CollectionStore[NotificationSnapshot]):
    """One user's notifications. Events targeted at anyone else are ignored."""

    topics = (Topic.NOTIFICATION,)

    def __init__(self, username: str, view: View | None = None) -> None:
        super().__init__(key=by_id, view=view)
        self.username = username

    def handle(self, topic: str, data: Mapping[str, Any]) -> None:
        if topic == Topic.NOTIFICATION:
            self.apply_notification_update(data)

    def apply_notification_update(self, data: Mapping[str, Any] | NotificationUpdatePayload) -> None:
        payload = _validate(data, NotificationUpdatePayload, Topic.NOTIFICATION, ("created", "read"))
        if payload.notification.target_user != self.username:
            return
        self.upsert(payload.notification, created=payload.type == "created")

    @property
    def unread(self) -> list[NotificationSnapshot]:
        return [n for n in self._items if not n.read]
