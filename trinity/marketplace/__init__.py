"""Agent-to-agent service marketplace."""

from trinity.marketplace.service import JobService, compute_protocol_fee
from trinity.marketplace.state_machine import (
    JOB_TRANSITIONS,
    TERMINAL_STATUSES,
    allowed_transitions,
    check_transition,
    is_terminal,
)

__all__ = [
    "JobService",
    "compute_protocol_fee",
    "JOB_TRANSITIONS",
    "TERMINAL_STATUSES",
    "allowed_transitions",
    "check_transition",
    "is_terminal",
]
