"""Update topics carried over the push channel."""

from enum import Enum


class Topic(str, Enum):
    QUESTION = "questionUpdate"
    ANSWER = "answerUpdate"
    COMMENT = "commentUpdate"
    FORUM = "forumUpdate"
    USER = "userUpdate"
    NOTIFICATION = "notificationUpdate"
    CHALLENGE = "challengeCompleted"


VALID_TOPICS = frozenset(topic.value for topic in Topic)


def validate_topic(topic: "Topic | str") -> str:
    """Return the wire name of ``topic``. Raises ValueError for unknown topics."""
    name = topic.value if isinstance(topic, Topic) else topic
    if name not in VALID_TOPICS:
        msg = f"Unknown update topic: {name}"
        raise ValueError(msg)
    return name
