"""Role definitions for the campus placement portal.

Four fixed roles:
1. Student - belongs to a university, auto-approved on registration
2. TPO - training and placement officer of a university; reviews companies and recruiters
3. Recruiter - belongs to a company, gated on review
4. Admin - platform operator, no organization, unrestricted
"""

from typing import Dict, FrozenSet, Optional

from campus.core.errors import ValidationError
from campus.db.models.account import AccountRole
from campus.db.models.organization import OrganizationKind


# Organization kind each non-admin role must belong to
ROLE_ORGANIZATION_KIND: Dict[AccountRole, OrganizationKind] = {
    AccountRole.STUDENT: OrganizationKind.UNIVERSITY,
    AccountRole.TPO: OrganizationKind.UNIVERSITY,
    AccountRole.RECRUITER: OrganizationKind.COMPANY,
}

# Roles that may sign themselves up
SELF_REGISTRABLE_ROLES: FrozenSet[AccountRole] = frozenset({
    AccountRole.STUDENT,
    AccountRole.TPO,
    AccountRole.RECRUITER,
})

# Self-registered accounts of these roles skip review
AUTO_APPROVED_ROLES: FrozenSet[AccountRole] = frozenset({
    AccountRole.STUDENT,
    AccountRole.TPO,
})

# What a TPO may decide; admins decide anything
TPO_DECIDABLE_ORGANIZATION_KINDS: FrozenSet[OrganizationKind] = frozenset({
    OrganizationKind.COMPANY,
})
TPO_DECIDABLE_ACCOUNT_ROLES: FrozenSet[AccountRole] = frozenset({
    AccountRole.RECRUITER,
})


def parse_role(value) -> AccountRole:
    """Coerce raw input into an AccountRole."""
    if isinstance(value, AccountRole):
        return value
    try:
        return AccountRole(value)
    except ValueError:
        raise ValidationError(
            f"Invalid role {value!r}; expected one of: "
            + ", ".join(r.value for r in AccountRole)
        )


def parse_organization_kind(value) -> OrganizationKind:
    """Coerce raw input into an OrganizationKind."""
    if isinstance(value, OrganizationKind):
        return value
    try:
        return OrganizationKind(value)
    except ValueError:
        raise ValidationError(
            f"Invalid organization kind {value!r}; expected one of: "
            + ", ".join(k.value for k in OrganizationKind)
        )


def required_organization_kind(role) -> Optional[OrganizationKind]:
    """Kind of organization the role must belong to, None for admins."""
    return ROLE_ORGANIZATION_KIND.get(parse_role(role))


def check_role_organization(role, organization_kind) -> None:
    """Enforce the role / organization kind pairing.

    Raises:
        ValidationError: On a missing organization, a kind mismatch, or an
            admin linked to an organization
    """
    required = required_organization_kind(role)
    if required is None:
        if organization_kind is not None:
            raise ValidationError("Admin accounts cannot belong to an organization")
        return
    if organization_kind is None:
        raise ValidationError(f"Role {parse_role(role).value} requires an organization")
    kind = parse_organization_kind(organization_kind)
    if kind != required:
        raise ValidationError(
            f"Role {parse_role(role).value} requires a {required.value} organization, "
            f"got {kind.value}"
        )
