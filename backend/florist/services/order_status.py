"""
Order status workflow.

The status tokens below are persisted and sent over the wire exactly as
written. Transitions are restricted to an allow-list per state; staying in
the same status is always allowed and only adds a note to the timeline.
"""
from typing import Dict, FrozenSet, Optional

from florist.errors import InvalidStatusChange, ValidationError

PAYEE = "payée"
EN_CREATION = "en_creation"
PRETE = "prête"
EN_LIVRAISON = "en_livraison"
LIVREE = "livrée"
ANNULEE = "annulée"

ORDER_STATUSES = (PAYEE, EN_CREATION, PRETE, EN_LIVRAISON, LIVREE, ANNULEE)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PAYEE: frozenset({EN_CREATION, ANNULEE}),
    EN_CREATION: frozenset({PRETE, ANNULEE, PAYEE}),
    PRETE: frozenset({EN_LIVRAISON, EN_CREATION, ANNULEE}),
    EN_LIVRAISON: frozenset({LIVREE, PRETE}),
    LIVREE: frozenset({EN_LIVRAISON}),
    ANNULEE: frozenset({PAYEE}),
}

STATUS_LABELS = {
    PAYEE: "Payée",
    EN_CREATION: "En cours de création",
    PRETE: "Prête",
    EN_LIVRAISON: "En livraison",
    LIVREE: "Livrée",
    ANNULEE: "Annulée",
}

# order column stamped on first entry into a status
LIFECYCLE_TIMESTAMPS = {
    PAYEE: "confirmed_at",
    EN_CREATION: "prepared_at",
    PRETE: "ready_at",
    LIVREE: "delivered_at",
    ANNULEE: "cancelled_at",
}

MAX_NOTE_LENGTH = 500


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def allowed_next(status: str):
    """Allowed targets in the order the table lists them, for stable client display."""
    return [s for s in ORDER_STATUSES if s in ALLOWED_TRANSITIONS.get(status, frozenset())]


def validate_status(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f'Unknown order status "{status}"', details={"allowed": list(ORDER_STATUSES)}
        )
    return status


def validate_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    if not isinstance(note, str):
        raise ValidationError("Note must be a string")
    note = note.strip()
    if len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"Note cannot exceed {MAX_NOTE_LENGTH} characters")
    return note or None


def check_transition(current: str, new: str) -> bool:
    """
    Validate current -> new. Returns True for a real status change, False for a
    note-only self-transition. Raises InvalidStatusChange otherwise.
    """
    validate_status(new)
    if new == current:
        return False
    if new not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusChange(current, new, allowed_next(current))
    return True


def default_note(status: str) -> str:
    return f'Status changed to "{status_label(status)}"'


def lifecycle_column(new_status: str) -> Optional[str]:
    """
    Timestamp column stamped when entering `new_status`, if any. Writers only
    fill it while it is still empty: cycling back through a status never
    rewrites it.
    """
    return LIFECYCLE_TIMESTAMPS.get(new_status)


def should_notify(previous: str, new: str) -> bool:
    """Customer emails go out for real changes, except into the initial paid state."""
    return new != previous and new != PAYEE
