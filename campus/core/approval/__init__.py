"""Approval workflow for organizations and accounts.

The service lives in ``campus.core.approval.service``; it is not imported
here because the ORM models depend on the state definitions below.
"""

from .states import (
    ApprovalAction,
    ApprovalState,
    ApprovalStatus,
    Approved,
    Pending,
    Rejected,
    VALID_TRANSITIONS,
)
from .machine import ApprovalStateMachine, parse_action

__all__ = [
    "ApprovalAction",
    "ApprovalState",
    "ApprovalStatus",
    "Approved",
    "Pending",
    "Rejected",
    "VALID_TRANSITIONS",
    "ApprovalStateMachine",
    "parse_action",
]
