"""
Booking status state machine.

All status changes go through ``apply_transition``. The table below is the
only place that says which moves are legal.
"""

from datetime import datetime, timezone

from valence.core.errors import IllegalTransition
from valence.models.booking import Booking

PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"

STATUSES = (PENDING, CONFIRMED, CANCELLED, COMPLETED)

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({COMPLETED}),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Distance from the initial state; used to tell a stale event from a bad one.
_RANK = {PENDING: 0, CONFIRMED: 1, CANCELLED: 2, COMPLETED: 2}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_behind(current: str, target: str) -> bool:
    """True when the booking has already moved past ``target``."""
    return current in TERMINAL or _RANK[current] > _RANK.get(target, 0)


def apply_transition(booking: Booking, target: str, *, transfer_id: str | None = None) -> bool:
    """Move ``booking`` to ``target``.

    Returns False when the booking is already in ``target`` (nothing applied),
    True when the transition was applied. Raises IllegalTransition otherwise.
    """
    if target not in TRANSITIONS:
        raise ValueError(f"unknown booking status {target!r}")
    current = booking.status
    if current == target:
        return False
    if not can_transition(current, target):
        raise IllegalTransition(current, target)

    now = datetime.now(timezone.utc)
    booking.status = target
    booking.updated_at = now
    if target == COMPLETED:
        booking.completed_at = now
        if transfer_id:
            booking.transfer_id = transfer_id
    elif target == CANCELLED:
        booking.cancelled_at = now
    return True
