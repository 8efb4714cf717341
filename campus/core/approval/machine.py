"""Approval state machine implementation.

Validates a decision against the current tagged state and produces the
next state plus a history record. Persistence is left to the service.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
import uuid

from campus.core.errors import InvalidStateTransition, ValidationError
from .states import (
    ApprovalAction,
    ApprovalState,
    ApprovalStatus,
    Pending,
    can_transition,
    decided_state,
    TERMINAL_STATES,
)


def parse_action(action) -> ApprovalAction:
    """Coerce raw input into an ApprovalAction."""
    if isinstance(action, ApprovalAction):
        return action
    try:
        return ApprovalAction(action)
    except ValueError:
        raise ValidationError(
            f"Invalid action {action!r}; expected one of: "
            + ", ".join(a.value for a in ApprovalAction)
        )


class ApprovalStateMachine:
    """
    State machine for a single organization or account.

    Only pending entities accept a decision; approved and rejected are
    terminal.
    """

    def __init__(self, entity_type: str, entity_id: UUID, current_state: ApprovalState):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self._state = current_state
        self._transition_history: list[Dict[str, Any]] = []

    @property
    def state(self) -> ApprovalState:
        return self._state

    @property
    def status(self) -> ApprovalStatus:
        return self._state.status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_perform(self, action: ApprovalAction) -> bool:
        return isinstance(self._state, Pending) and can_transition(self.status, action)

    def transition(
        self,
        action: ApprovalAction,
        *,
        decided_by: UUID,
        at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> ApprovalState:
        """
        Apply a decision.

        Args:
            action: approve or reject
            decided_by: ID of the deciding account
            at: Decision timestamp, defaults to now
            notes: Optional reviewer notes

        Returns:
            The new tagged state

        Raises:
            InvalidStateTransition: If the entity is not pending
        """
        action = parse_action(action)
        if not self.can_perform(action):
            raise InvalidStateTransition(
                f"Cannot {action.value} {self.entity_type} {self.entity_id}: "
                f"status is {self.status.value}",
                current_status=self.status.value,
            )

        from_state = self.status
        self._state = decided_state(action, decided_by, at or datetime.utcnow(), notes)

        self._transition_history.append({
            "id": uuid.uuid4(),
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "from_state": from_state.value,
            "to_state": self.status.value,
            "action": action.value,
            "decided_by": decided_by,
            "notes": notes,
            "created_at": self._state.at,
        })

        return self._state

    def get_history(self) -> list[Dict[str, Any]]:
        """Get the transitions applied through this machine."""
        return self._transition_history.copy()
