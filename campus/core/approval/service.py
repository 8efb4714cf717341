"""Approval service for organizations and accounts.

Owns every write of approval_status / approved_by / approved_at. Each
decision runs in one transaction:

1. lock the target row (``SELECT ... FOR UPDATE``, refreshing any stale
   identity-map copy)
2. validate the transition on the tagged state
3. write it with a compare-and-swap ``UPDATE ... WHERE approval_status =
   'pending'``; zero matched rows means another writer won
4. for organizations, cascade the same outcome to recruiters still pending
5. commit, then hand notifications to the notifier

Notifications are sent strictly after commit and their failures are
logged and dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from campus.core.errors import InvalidStateTransition, NotFound, ValidationError
from campus.core.rbac.checker import CallerContext, require_decision_scope
from campus.db.models import (
    Account,
    AccountRole,
    ApprovalHistory,
    NotificationKind,
    NotificationPriority,
    Organization,
    OrganizationKind,
)
from campus.services.notifier import Notifier
from .machine import ApprovalStateMachine, parse_action
from .states import ApprovalAction, ApprovalState, ApprovalStatus

logger = logging.getLogger(__name__)

PENDING = ApprovalStatus.PENDING.value


@dataclass
class DecisionResult:
    """Outcome of one committed decision."""

    entity_type: str
    entity: Union[Organization, Account]
    status: ApprovalStatus
    decided_by: UUID
    decided_at: datetime
    notes: Optional[str] = None
    cascaded: List[Account] = field(default_factory=list)

    @property
    def entity_id(self) -> UUID:
        return self.entity.id


class BulkDecisionResult(NamedTuple):
    affected: int
    decisions: List[DecisionResult]
    skipped: List[UUID]


class PendingApprovals(NamedTuple):
    organizations: List[Organization]
    recruiters_by_organization: Dict[UUID, List[Account]]
    accounts: List[Account]


class ApprovalService:
    """
    High-level service for approval decisions.

    Handles:
    - Single organization decisions with recruiter cascade
    - Single account decisions
    - Bulk organization decisions
    - Pending queues and statistics for reviewers
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        """
        Args:
            db: Database session; the service commits it
            notifier: Side channel for decision outcomes
        """
        self.db = db
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide_organization(
        self,
        organization_id: UUID,
        action: Union[ApprovalAction, str],
        decided_by: UUID,
        notes: Optional[str] = None,
        *,
        caller: Optional[CallerContext] = None,
    ) -> DecisionResult:
        """
        Approve or reject a pending organization and its pending recruiters.

        Raises:
            ValidationError: Unknown action
            NotFound: Organization does not exist
            InsufficientRole: ``caller`` may not decide this organization
            InvalidStateTransition: Organization is not pending
        """
        action = parse_action(action)
        try:
            organization = self._lock_organization(organization_id)
            if organization is None:
                raise NotFound("Organization", organization_id)
            if caller is not None:
                require_decision_scope(caller, organization)

            result = self._apply_organization_decision(
                organization, action, decided_by, notes, datetime.utcnow()
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Organization %s %s by %s (%d recruiters cascaded)",
            organization_id, result.status.value, decided_by, len(result.cascaded),
        )
        self._notify_organization_decision(result)
        return result

    def decide_account(
        self,
        account_id: UUID,
        action: Union[ApprovalAction, str],
        decided_by: UUID,
        notes: Optional[str] = None,
        *,
        caller: Optional[CallerContext] = None,
    ) -> DecisionResult:
        """
        Approve or reject a single pending account. Never touches its organization.

        Raises:
            ValidationError: Unknown action
            NotFound: Account does not exist
            InsufficientRole: ``caller`` may not decide this account
            InvalidStateTransition: Account is not pending, or approval was
                requested while its organization is rejected
        """
        action = parse_action(action)
        try:
            account = self._lock_account(account_id)
            if account is None:
                raise NotFound("Account", account_id)
            if caller is not None:
                require_decision_scope(caller, account)

            at = datetime.utcnow()
            machine = ApprovalStateMachine("account", account.id, account.approval_state)
            new_state = machine.transition(action, decided_by=decided_by, at=at, notes=notes)

            if action == ApprovalAction.APPROVE and account.organization is not None:
                if account.organization.approval_status == ApprovalStatus.REJECTED.value:
                    raise InvalidStateTransition(
                        f"Cannot approve account {account.id}: organization "
                        f"{account.organization_id} is rejected",
                        current_status=account.approval_status,
                    )

            self._compare_and_swap(Account, account, new_state)
            self._record_history(machine)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        result = DecisionResult(
            entity_type="account",
            entity=account,
            status=new_state.status,
            decided_by=decided_by,
            decided_at=at,
            notes=notes,
        )
        logger.info("Account %s %s by %s", account_id, result.status.value, decided_by)
        self._notify_account(account, result, via_organization=None)
        return result

    def bulk_decide_organizations(
        self,
        organization_ids: Iterable[UUID],
        action: Union[ApprovalAction, str],
        decided_by: UUID,
        notes: Optional[str] = None,
        *,
        caller: Optional[CallerContext] = None,
    ) -> BulkDecisionResult:
        """
        Decide every pending organization in ``organization_ids`` in one transaction.

        Missing and already-decided ids are skipped. ``affected`` counts only
        the organizations actually transitioned.

        Raises:
            ValidationError: Empty id list or unknown action
            InsufficientRole: ``caller`` may not decide one of the organizations
        """
        action = parse_action(action)
        ids = list(dict.fromkeys(organization_ids))
        if not ids:
            raise ValidationError("organization_ids must not be empty")

        decisions: List[DecisionResult] = []
        skipped: List[UUID] = []
        try:
            # Fixed lock order keeps concurrent bulk calls from deadlocking
            organizations = (
                self.db.query(Organization)
                .filter(Organization.id.in_(ids))
                .order_by(Organization.id)
                .populate_existing()
                .with_for_update()
                .all()
            )
            if caller is not None:
                for organization in organizations:
                    require_decision_scope(caller, organization)

            found = {organization.id for organization in organizations}
            skipped.extend(i for i in ids if i not in found)

            at = datetime.utcnow()
            for organization in organizations:
                if organization.approval_status != PENDING:
                    skipped.append(organization.id)
                    continue
                decisions.append(
                    self._apply_organization_decision(organization, action, decided_by, notes, at)
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Bulk %s by %s: %d transitioned, %d skipped",
            action.value, decided_by, len(decisions), len(skipped),
        )
        for result in decisions:
            self._notify_organization_decision(result)
        return BulkDecisionResult(affected=len(decisions), decisions=decisions, skipped=skipped)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_pending(self, caller: CallerContext) -> PendingApprovals:
        """Pending organizations (with their pending recruiters) and pending accounts
        the caller is allowed to decide."""
        org_query = self.db.query(Organization).filter(
            Organization.approval_status == PENDING,
            Organization.is_active.is_(True),
        )
        account_query = self.db.query(Account).filter(
            Account.approval_status == PENDING,
            Account.is_active.is_(True),
        )
        if not caller.is_admin:
            org_query = org_query.filter(Organization.kind == OrganizationKind.COMPANY.value)
            account_query = account_query.filter(Account.role == AccountRole.RECRUITER.value)

        organizations = org_query.order_by(Organization.created_at.asc()).all()
        accounts = account_query.order_by(Account.created_at.asc()).all()

        recruiters: Dict[UUID, List[Account]] = {o.id: [] for o in organizations}
        for account in accounts:
            if account.organization_id in recruiters and account.role == AccountRole.RECRUITER.value:
                recruiters[account.organization_id].append(account)

        return PendingApprovals(
            organizations=organizations,
            recruiters_by_organization=recruiters,
            accounts=accounts,
        )

    def stats(self, caller: CallerContext, recent_limit: int = 10) -> Dict[str, Any]:
        """Counts by status and the most recent organization decisions."""
        org_query = self.db.query(Organization.approval_status, func.count(Organization.id))
        recent_query = self.db.query(Organization).filter(Organization.approval_status != PENDING)
        if not caller.is_admin:
            org_query = org_query.filter(Organization.kind == OrganizationKind.COMPANY.value)
            recent_query = recent_query.filter(Organization.kind == OrganizationKind.COMPANY.value)

        account_rows = (
            self.db.query(Account.approval_status, func.count(Account.id))
            .filter(Account.role == AccountRole.RECRUITER.value)
            .group_by(Account.approval_status)
            .all()
        )

        return {
            "organizations": _status_counts(org_query.group_by(Organization.approval_status).all()),
            "recruiters": _status_counts(account_rows),
            "recent_decisions": (
                recent_query.order_by(Organization.approved_at.desc()).limit(recent_limit).all()
            ),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_organization(self, organization_id: UUID) -> Optional[Organization]:
        return (
            self.db.query(Organization)
            .filter(Organization.id == organization_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def _lock_account(self, account_id: UUID) -> Optional[Account]:
        # Organization first, account second: the same order the cascade uses
        organization_id = (
            self.db.query(Account.organization_id).filter(Account.id == account_id).scalar()
        )
        if organization_id is not None:
            self._lock_organization(organization_id)
        return (
            self.db.query(Account)
            .filter(Account.id == account_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def _apply_organization_decision(
        self,
        organization: Organization,
        action: ApprovalAction,
        decided_by: UUID,
        notes: Optional[str],
        at: datetime,
    ) -> DecisionResult:
        machine = ApprovalStateMachine("organization", organization.id, organization.approval_state)
        new_state = machine.transition(action, decided_by=decided_by, at=at, notes=notes)

        extra = {"is_verified": True} if action == ApprovalAction.APPROVE else {}
        self._compare_and_swap(Organization, organization, new_state, **extra)
        self._record_history(machine)

        cascaded = self._cascade_to_recruiters(organization, new_state)
        return DecisionResult(
            entity_type="organization",
            entity=organization,
            status=new_state.status,
            decided_by=decided_by,
            decided_at=at,
            notes=notes,
            cascaded=cascaded,
        )

    def _cascade_to_recruiters(self, organization: Organization, new_state: ApprovalState) -> List[Account]:
        recruiters = (
            self.db.query(Account)
            .filter(
                Account.organization_id == organization.id,
                Account.role == AccountRole.RECRUITER.value,
                Account.approval_status == PENDING,
            )
            .order_by(Account.id)
            .populate_existing()
            .with_for_update()
            .all()
        )
        if not recruiters:
            return []

        values = new_state.to_columns()
        values["updated_at"] = new_state.at
        ids = [account.id for account in recruiters]
        result = self.db.execute(
            update(Account)
            .where(Account.id.in_(ids), Account.approval_status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            raise InvalidStateTransition(
                f"Recruiters of organization {organization.id} were decided concurrently"
            )

        for account in recruiters:
            for column, value in values.items():
                set_committed_value(account, column, value)
            self.db.add(ApprovalHistory(
                entity_type="account",
                entity_id=account.id,
                from_state=PENDING,
                to_state=new_state.status.value,
                action=_action_for(new_state.status).value,
                decided_by=new_state.by,
                cascaded_from=organization.id,
                notes=new_state.notes,
                created_at=new_state.at,
            ))
        return recruiters

    def _compare_and_swap(self, model, entity, new_state: ApprovalState, **extra: Any) -> None:
        values = new_state.to_columns()
        values.update(extra)
        values["updated_at"] = new_state.at
        result = self.db.execute(
            update(model)
            .where(model.id == entity.id, model.approval_status == PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateTransition(
                f"{model.__name__} {entity.id} was decided concurrently",
            )
        for column, value in values.items():
            set_committed_value(entity, column, value)

    def _record_history(self, machine: ApprovalStateMachine) -> None:
        for record in machine.get_history():
            self.db.add(ApprovalHistory(
                id=record["id"],
                entity_type=record["entity_type"],
                entity_id=record["entity_id"],
                from_state=record["from_state"],
                to_state=record["to_state"],
                action=record["action"],
                decided_by=record["decided_by"],
                notes=record["notes"],
                created_at=record["created_at"],
            ))

    # ------------------------------------------------------------------
    # Notifications (after commit only)
    # ------------------------------------------------------------------

    def _notify_organization_decision(self, result: DecisionResult) -> None:
        for account in result.cascaded:
            self._notify_account(account, result, via_organization=result.entity)

    def _notify_account(
        self,
        account: Account,
        result: DecisionResult,
        via_organization: Optional[Organization],
    ) -> None:
        if self.notifier is None:
            return

        approved = result.status == ApprovalStatus.APPROVED
        title = "Account approved" if approved else "Account rejected"
        if via_organization is not None:
            body = (
                f"{via_organization.name} has been {result.status.value}; "
                f"your recruiter account is now {result.status.value}."
            )
        elif approved:
            body = "Your account has been approved. You can now sign in."
        else:
            body = "Your account registration has been rejected."

        metadata = {
            "status": result.status.value,
            "decided_by": str(result.decided_by),
            "decided_at": result.decided_at.isoformat(),
            "notes": result.notes,
        }
        if via_organization is not None:
            metadata["organization_id"] = str(via_organization.id)

        try:
            self.notifier.notify(
                account.id,
                title,
                body,
                kind=NotificationKind.SYSTEM_ALERT.value,
                metadata=metadata,
                priority=NotificationPriority.HIGH.value,
            )
        except Exception:
            logger.exception("Notification for account %s failed; decision stands", account.id)


def _status_counts(rows) -> Dict[str, int]:
    counts = {status.value: 0 for status in ApprovalStatus}
    for status, count in rows:
        counts[status] = count
    counts["total"] = sum(counts[s.value] for s in ApprovalStatus)
    return counts


def _action_for(status: ApprovalStatus) -> ApprovalAction:
    return ApprovalAction.APPROVE if status == ApprovalStatus.APPROVED else ApprovalAction.REJECT
