"""
Broadcast lifecycle.

    draft -> sending -> sent | partial_failure | failed

A terminal broadcast is never re-sent; the caller creates a new one instead.
"""
from .exceptions import InvalidState

DRAFT = "draft"
SENDING = "sending"
SENT = "sent"
PARTIAL_FAILURE = "partial_failure"
FAILED = "failed"

BROADCAST_STATUS = (
    (DRAFT, "Draft"),
    (SENDING, "Sending"),
    (SENT, "Sent"),
    (PARTIAL_FAILURE, "Partial failure"),
    (FAILED, "Failed"),
)

TERMINAL = frozenset({SENT, PARTIAL_FAILURE, FAILED})

TRANSITIONS = {
    DRAFT: frozenset({SENDING}),
    SENDING: TERMINAL,
    SENT: frozenset(),
    PARTIAL_FAILURE: frozenset(),
    FAILED: frozenset(),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL


def check_transition(current: str, target: str) -> None:
    if target not in TRANSITIONS.get(current, ()):
        raise InvalidState(f"cannot move broadcast from {current} to {target}")


def terminal_status(sent_count: int, failed_count: int) -> str:
    if failed_count == 0:
        return SENT
    if sent_count == 0:
        return FAILED
    return PARTIAL_FAILURE
