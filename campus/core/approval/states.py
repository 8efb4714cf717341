"""Approval states and transitions for organizations and accounts.

State Machine Diagram:

    ┌──────────┐
    │ PENDING  │ ← self-registered organization / recruiter
    └────┬─────┘
         │
         ├──────────────────┐
         │ approve          │ reject
    ┌────▼─────┐      ┌─────▼────┐
    │ APPROVED │      │ REJECTED │
    └──────────┘      └──────────┘

Both decided states are terminal. Entities created by an admin start in
APPROVED without passing through the machine.

The persisted columns (approval_status, approved_by, approved_at,
approval_notes) are only ever read and written through the tagged values
below, so an approved state without a decider cannot be built.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Set, Union
from uuid import UUID


class ApprovalStatus(str, Enum):
    """Persisted approval status of an organization or account."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    """Decisions a reviewer can take on a pending entity."""

    APPROVE = "approve"
    REJECT = "reject"


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: ApprovalStatus
    to_state: ApprovalStatus
    action: ApprovalAction


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.APPROVED, ApprovalAction.APPROVE),
    TransitionRule(ApprovalStatus.PENDING, ApprovalStatus.REJECTED, ApprovalAction.REJECT),
]

VALID_TRANSITIONS: Dict[ApprovalStatus, Set[ApprovalAction]] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.action)

TERMINAL_STATES: Set[ApprovalStatus] = {
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
}


def can_transition(from_state: ApprovalStatus, action: ApprovalAction) -> bool:
    """Check if an action is valid from the given state."""
    return action in VALID_TRANSITIONS.get(from_state, set())


# Tagged state values

@dataclass(frozen=True)
class Pending:
    status = ApprovalStatus.PENDING

    def to_columns(self) -> Dict[str, Any]:
        return {
            "approval_status": self.status.value,
            "approved_by": None,
            "approved_at": None,
            "approval_notes": None,
        }


@dataclass(frozen=True)
class Decided:
    by: UUID
    at: datetime
    notes: Optional[str] = None

    def __post_init__(self):
        if self.by is None or self.at is None:
            raise ValueError("A decided approval state needs both a decider and a timestamp")

    def to_columns(self) -> Dict[str, Any]:
        return {
            "approval_status": self.status.value,
            "approved_by": self.by,
            "approved_at": self.at,
            "approval_notes": self.notes,
        }


@dataclass(frozen=True)
class Approved(Decided):
    status = ApprovalStatus.APPROVED


@dataclass(frozen=True)
class Rejected(Decided):
    status = ApprovalStatus.REJECTED


ApprovalState = Union[Pending, Approved, Rejected]


def state_from_columns(
    status: str,
    approved_by: Optional[UUID],
    approved_at: Optional[datetime],
    approval_notes: Optional[str] = None,
) -> ApprovalState:
    """Rebuild the tagged state from persisted columns."""
    status = ApprovalStatus(status)
    if status == ApprovalStatus.PENDING:
        return Pending()
    if status == ApprovalStatus.APPROVED:
        return Approved(by=approved_by, at=approved_at, notes=approval_notes)
    return Rejected(by=approved_by, at=approved_at, notes=approval_notes)


def decided_state(
    action: ApprovalAction,
    by: UUID,
    at: datetime,
    notes: Optional[str] = None,
) -> ApprovalState:
    """Build the decided state an action leads to."""
    if action == ApprovalAction.APPROVE:
        return Approved(by=by, at=at, notes=notes)
    return Rejected(by=by, at=at, notes=notes)
