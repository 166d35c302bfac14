"""Alert review state machine"""

from typing import Dict, FrozenSet

from wallet_guard.domain.exceptions import InvalidStateError, ValidationError
from wallet_guard.domain.models import AlertStatus

# Every review moves a pending alert into exactly one terminal status
ALERT_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({AlertStatus.REVIEWED, AlertStatus.DISMISSED, AlertStatus.CONFIRMED}),
    AlertStatus.REVIEWED: frozenset(),
    AlertStatus.DISMISSED: frozenset(),
    AlertStatus.CONFIRMED: frozenset(),
}

REVIEW_STATUSES = ALERT_TRANSITIONS[AlertStatus.PENDING]


def parse_review_status(value: "str | AlertStatus") -> AlertStatus:
    """Validate the status a reviewer asked for"""
    try:
        status = AlertStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value!r}") from None
    if status not in REVIEW_STATUSES:
        raise ValidationError(f"Invalid status: {status.value!r}")
    return status


def is_terminal(status: AlertStatus) -> bool:
    return not ALERT_TRANSITIONS[status]


def ensure_transition(current: AlertStatus, target: AlertStatus) -> None:
    if target not in ALERT_TRANSITIONS[current]:
        raise InvalidStateError(f"Alert is {current.value}; cannot move to {target.value}")
