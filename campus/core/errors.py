"""Error taxonomy for the campus placement portal.

Every failure the approval workflow and the authorization guard can report
is a subclass of ``CampusError``. Each class carries a stable ``code`` and
the HTTP status the API layer renders it with, so routers never translate
errors by hand.
"""

from typing import Optional


class CampusError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())
        self.message = message or self.default_message()

    def default_message(self) -> str:
        return self.code.replace("_", " ").capitalize()


class NotFound(CampusError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class InvalidStateTransition(CampusError):
    """The target is not in a state that allows the requested decision."""

    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class Conflict(CampusError):
    code = "conflict"
    status_code = 409


class ValidationError(CampusError):
    code = "validation_error"
    status_code = 400


# Authorization denials

class InsufficientRole(CampusError):
    code = "insufficient_role"
    status_code = 403


class CrossOrganizationAccess(CampusError):
    code = "cross_organization_access"
    status_code = 403


class NotOwner(CampusError):
    code = "not_owner"
    status_code = 403


# Credential failures

class InvalidCredential(CampusError):
    code = "invalid_credential"
    status_code = 401


class TokenExpired(InvalidCredential):
    code = "token_expired"


class UnknownAccount(CampusError):
    code = "unknown_account"
    status_code = 401


class AccountDisabled(CampusError):
    """The caller exists but may not act on the platform."""

    code = "account_disabled"
    status_code = 403


class AccountPendingApproval(AccountDisabled):
    code = "account_pending_approval"

    def default_message(self) -> str:
        return "Account is pending approval"


class AccountRejected(AccountDisabled):
    code = "account_rejected"

    def default_message(self) -> str:
        return "Account registration was rejected"


class OrganizationDisabled(AccountDisabled):
    code = "organization_disabled"

    def default_message(self) -> str:
        return "Organization is not approved or has been deactivated"
