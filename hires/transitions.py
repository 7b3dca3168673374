"""The one table of allowed hire status changes."""

from common.choices import HireStatus
from common.exceptions import InvalidTransitionError

TERMINAL_STATUSES = frozenset({
    HireStatus.COMPLETED,
    HireStatus.REJECTED,
    HireStatus.CANCELLED,
})

ACTIVE_STATUSES = frozenset(set(HireStatus.values) - TERMINAL_STATUSES)

TRANSITIONS = {
    HireStatus.PENDING: frozenset({
        HireStatus.IN_PROGRESS,
        HireStatus.REJECTED,
        HireStatus.CANCELLED,
    }),
    HireStatus.IN_PROGRESS: frozenset({
        HireStatus.WAITING_CLIENT_APPROVAL,
        HireStatus.COMPLETED,
        HireStatus.CANCELLED,
    }),
    HireStatus.WAITING_CLIENT_APPROVAL: frozenset({
        HireStatus.COMPLETED,
        HireStatus.IN_PROGRESS,
        HireStatus.CANCELLED,
    }),
    HireStatus.COMPLETED: frozenset(),
    HireStatus.REJECTED: frozenset(),
    HireStatus.CANCELLED: frozenset(),
}


def is_terminal(status):
    return status in TERMINAL_STATUSES


def can_transition(current, target, *, guest_review=False):
    """
    ``guest_review`` opens the shortcut a guest review takes: any non-terminal
    status straight to completed.
    """
    if guest_review and target == HireStatus.COMPLETED:
        return current in ACTIVE_STATUSES
    if is_terminal(current):
        return False
    return target in TRANSITIONS.get(current, frozenset())


def check_transition(current, target, *, guest_review=False):
    if not can_transition(current, target, guest_review=guest_review):
        raise InvalidTransitionError(
            f"Cannot move a hire from '{current}' to '{target}'."
        )
