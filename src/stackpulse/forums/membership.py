"""Forum membership state machine.

A user's relationship to a forum is one of four states. ``non_member`` is never
stored; it is the absence of a membership row.
"""

from __future__ import annotations

from stackpulse.errors import MembershipTransitionError

NON_MEMBER = "non_member"
AWAITING_APPROVAL = "awaiting_approval"
MEMBER = "member"
BANNED = "banned"

STATES = frozenset({NON_MEMBER, AWAITING_APPROVAL, MEMBER, BANNED})

# action -> {from_state: to_state}; "join" resolves by forum type below
TRANSITIONS: dict[str, dict[str, str]] = {
    "join": {NON_MEMBER: MEMBER},
    "cancel": {AWAITING_APPROVAL: NON_MEMBER},
    "leave": {MEMBER: NON_MEMBER, AWAITING_APPROVAL: NON_MEMBER},
    "approve": {AWAITING_APPROVAL: MEMBER},
    "ban": {MEMBER: BANNED, AWAITING_APPROVAL: BANNED},
    "unban": {BANNED: NON_MEMBER},
}

MODERATOR_ACTIONS = frozenset({"approve", "ban", "unban"})


def next_state(action: str, state: str, forum_type: str = "public") -> str:
    """Return the state reached by applying ``action`` in ``state``.

    Raises MembershipTransitionError for any pair not in the transition table.
    """
    targets = TRANSITIONS.get(action)
    if targets is None or state not in targets:
        raise MembershipTransitionError(action, state)
    if action == "join" and forum_type == "private":
        return AWAITING_APPROVAL
    return targets[state]


def can_post(state: str, forum_type: str) -> bool:
    """Posting gate: banned users never post; private forums require membership."""
    if state == BANNED:
        return False
    if forum_type == "private":
        return state == MEMBER
    return True
