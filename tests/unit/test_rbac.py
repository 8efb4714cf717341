"""Tests for roles, the permission matrix and the authorization guard."""

import pytest
from uuid import uuid4

from campus.core.errors import (
    AccountDisabled,
    AccountPendingApproval,
    AccountRejected,
    CrossOrganizationAccess,
    InsufficientRole,
    InvalidCredential,
    NotOwner,
    OrganizationDisabled,
    UnknownAccount,
    ValidationError,
)
from campus.core.rbac.checker import (
    CallerContext,
    check_account_usable,
    require_decision_scope,
    require_ownership,
    require_permission,
    require_role,
    require_same_organization,
    resolve_caller,
)
from campus.core.rbac.permissions import (
    Action,
    PERMISSION_ROLES,
    Permission,
    Resource,
    get_role_permissions,
    is_valid_permission,
    roles_for,
)
from campus.core.rbac.roles import (
    check_role_organization,
    parse_organization_kind,
    parse_role,
    required_organization_kind,
)
from campus.core.security import issue_tokens, revoke_session
from campus.db.models import Account, AccountRole, Organization, OrganizationKind


def _caller(role, organization_id=None, kind=None):
    return CallerContext(
        account_id=uuid4(),
        email=f"{role.value}@example.com",
        role=role,
        organization_id=organization_id,
        organization_kind=kind,
    )


class TestRoles:

    def test_parse_role(self):
        assert parse_role("tpo") == AccountRole.TPO
        with pytest.raises(ValidationError):
            parse_role("superuser")

    def test_parse_organization_kind(self):
        assert parse_organization_kind("company") == OrganizationKind.COMPANY
        with pytest.raises(ValidationError):
            parse_organization_kind("school")

    def test_required_organization_kind(self):
        assert required_organization_kind("student") == OrganizationKind.UNIVERSITY
        assert required_organization_kind("tpo") == OrganizationKind.UNIVERSITY
        assert required_organization_kind("recruiter") == OrganizationKind.COMPANY
        assert required_organization_kind("admin") is None

    @pytest.mark.parametrize("role,kind", [
        ("student", "university"),
        ("tpo", "university"),
        ("recruiter", "company"),
        ("admin", None),
    ])
    def test_valid_pairings(self, role, kind):
        check_role_organization(role, kind)

    @pytest.mark.parametrize("role,kind", [
        ("student", "company"),
        ("tpo", "company"),
        ("recruiter", "university"),
        ("recruiter", None),
        ("student", None),
        ("admin", "university"),
        ("recruiter", "school"),
        ("student", ""),
    ])
    def test_invalid_pairings(self, role, kind):
        with pytest.raises(ValidationError):
            check_role_organization(role, kind)


class TestPermissions:

    def test_permission_string_roundtrip(self):
        perm = Permission.from_string("approvals:decide")
        assert perm == Permission(Resource.APPROVALS, Action.DECIDE)
        assert str(perm) == "approvals:decide"

    def test_malformed_permission(self):
        with pytest.raises(ValueError):
            Permission.from_string("approvals")
        assert not is_valid_permission("approvals:fly")
        assert is_valid_permission("accounts:manage")

    def test_reviewers(self):
        decide = Permission(Resource.APPROVALS, Action.DECIDE)
        assert roles_for(decide) == {AccountRole.TPO, AccountRole.ADMIN}

    def test_admin_has_every_permission(self):
        assert len(get_role_permissions(AccountRole.ADMIN)) == len(PERMISSION_ROLES)

    def test_student_permissions(self):
        perms = get_role_permissions(AccountRole.STUDENT)
        assert "notifications:list" in perms
        assert "approvals:decide" not in perms
        assert "accounts:list" not in perms

    def test_unknown_permission_allows_nobody(self):
        assert roles_for(Permission(Resource.PROFILE, Action.DELETE)) == frozenset()


class TestGuards:

    def test_require_role(self):
        require_role(_caller(AccountRole.ADMIN), {AccountRole.ADMIN})
        with pytest.raises(InsufficientRole):
            require_role(_caller(AccountRole.STUDENT), {AccountRole.TPO, AccountRole.ADMIN})

    def test_require_permission(self):
        require_permission(_caller(AccountRole.TPO), "approvals:decide")
        with pytest.raises(InsufficientRole):
            require_permission(_caller(AccountRole.RECRUITER), "approvals:decide")
        with pytest.raises(InsufficientRole):
            require_permission(_caller(AccountRole.TPO), "accounts:delete")

    def test_require_same_organization(self):
        org_id = uuid4()
        require_same_organization(_caller(AccountRole.STUDENT, org_id), org_id)
        require_same_organization(_caller(AccountRole.ADMIN), org_id)
        with pytest.raises(CrossOrganizationAccess):
            require_same_organization(_caller(AccountRole.TPO, uuid4()), org_id)
        with pytest.raises(CrossOrganizationAccess):
            require_same_organization(_caller(AccountRole.TPO, org_id), None)

    def test_require_ownership(self):
        caller = _caller(AccountRole.STUDENT)
        require_ownership(caller, caller.account_id)
        require_ownership(_caller(AccountRole.ADMIN), uuid4())
        with pytest.raises(NotOwner):
            require_ownership(caller, uuid4())

    def test_decision_scope_admin(self):
        admin = _caller(AccountRole.ADMIN)
        require_decision_scope(admin, Organization(kind="university"))
        require_decision_scope(admin, Account(role="student"))

    def test_decision_scope_tpo(self):
        tpo = _caller(AccountRole.TPO, uuid4(), OrganizationKind.UNIVERSITY)
        require_decision_scope(tpo, Organization(kind="company"))
        require_decision_scope(tpo, Account(role="recruiter"))
        with pytest.raises(InsufficientRole):
            require_decision_scope(tpo, Organization(kind="university"))
        with pytest.raises(InsufficientRole):
            require_decision_scope(tpo, Account(role="tpo"))

    def test_decision_scope_non_reviewer(self):
        with pytest.raises(InsufficientRole):
            require_decision_scope(_caller(AccountRole.RECRUITER), Organization(kind="company"))


@pytest.mark.db
class TestAccountUsable:

    def test_usable_account(self, account_factory):
        check_account_usable(account_factory(role="student"))

    def test_deactivated(self, account_factory):
        with pytest.raises(AccountDisabled):
            check_account_usable(account_factory(role="student", is_active=False))

    def test_pending(self, account_factory, org_factory):
        company = org_factory(kind="company")
        with pytest.raises(AccountPendingApproval):
            check_account_usable(account_factory(role="recruiter", organization=company, status="pending"))

    def test_rejected(self, account_factory, org_factory):
        company = org_factory(kind="company")
        with pytest.raises(AccountRejected):
            check_account_usable(account_factory(role="recruiter", organization=company, status="rejected"))

    def test_organization_not_approved(self, account_factory, org_factory):
        company = org_factory(kind="company", status="pending")
        recruiter = account_factory(role="recruiter", organization=company)
        with pytest.raises(OrganizationDisabled):
            check_account_usable(recruiter)

    def test_organization_deactivated(self, account_factory, org_factory):
        university = org_factory(kind="university", is_active=False)
        with pytest.raises(OrganizationDisabled):
            check_account_usable(account_factory(role="student", organization=university))

    def test_admin_needs_no_organization(self, admin):
        check_account_usable(admin)


@pytest.mark.db
class TestResolveCaller:

    def test_resolves_fresh_context(self, db_session, tpo, university):
        pair = issue_tokens(tpo.id, db_session)
        caller = resolve_caller(pair.access_token, db_session)

        assert caller.account_id == tpo.id
        assert caller.role == AccountRole.TPO
        assert caller.organization_id == university.id
        assert caller.organization_kind == OrganizationKind.UNIVERSITY
        assert caller.session_jti == pair.jti

    def test_deactivation_takes_effect_immediately(self, db_session, tpo):
        pair = issue_tokens(tpo.id, db_session)
        tpo.is_active = False
        db_session.commit()

        with pytest.raises(AccountDisabled):
            resolve_caller(pair.access_token, db_session)

    def test_revoked_session(self, db_session, tpo):
        pair = issue_tokens(tpo.id, db_session)
        revoke_session(pair.jti, db_session)

        with pytest.raises(InvalidCredential):
            resolve_caller(pair.access_token, db_session)

    def test_deleted_account(self, db_session, account_factory):
        student = account_factory(role="student")
        pair = issue_tokens(student.id, db_session)
        db_session.delete(student)
        db_session.commit()

        # Sessions cascade with the account, so the token fails either way
        with pytest.raises((UnknownAccount, InvalidCredential)):
            resolve_caller(pair.access_token, db_session)

    def test_garbage_token(self, db_session):
        with pytest.raises(InvalidCredential):
            resolve_caller("not-a-jwt", db_session)
