"""Service job transition table."""

from trinity.exceptions import ConflictError
from trinity.models import ServiceJobStatus

JOB_TRANSITIONS: dict[ServiceJobStatus, frozenset[ServiceJobStatus]] = {
    ServiceJobStatus.CREATED: frozenset({ServiceJobStatus.ACCEPTED, ServiceJobStatus.REJECTED}),
    ServiceJobStatus.ACCEPTED: frozenset({ServiceJobStatus.DELIVERING}),
    ServiceJobStatus.DELIVERING: frozenset({ServiceJobStatus.COMPLETED, ServiceJobStatus.DISPUTED}),
    ServiceJobStatus.COMPLETED: frozenset(),
    ServiceJobStatus.REJECTED: frozenset(),
    ServiceJobStatus.DISPUTED: frozenset(),
    ServiceJobStatus.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, nxt in JOB_TRANSITIONS.items() if not nxt)

# Statuses the expiry sweep may move to EXPIRED.
EXPIRABLE_STATUSES = frozenset({ServiceJobStatus.CREATED, ServiceJobStatus.ACCEPTED})


def allowed_transitions(current: ServiceJobStatus) -> list[ServiceJobStatus]:
    """Targets reachable from ``current``, in declaration order."""
    return [status for status in ServiceJobStatus if status in JOB_TRANSITIONS[current]]


def is_terminal(status: ServiceJobStatus) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: ServiceJobStatus, target: ServiceJobStatus) -> None:
    """
    Raises:
        ConflictError: If ``target`` is not reachable from ``current``
    """
    if target in JOB_TRANSITIONS[current]:
        return
    allowed = ", ".join(s.value for s in allowed_transitions(current)) or "none"
    raise ConflictError(
        "INVALID_TRANSITION",
        f"Cannot transition from {current.value} to {target.value}. Allowed: {allowed}",
    )
