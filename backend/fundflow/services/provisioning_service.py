# Overview: Service-layer operations for login account provisioning.

"""
Account Provisioner

Reconciles a person's login account after a membership event:
- GRANT: issue an account when the role needs one
- CHANGE: keep the account's system_role in step with the new role
- REVOKE: deactivate when no qualifying membership remains

Runs inside the caller's transaction and never commits. Store and hashing
errors propagate; the caller's transaction is then not applied.

The one-time credential is the person's email address. It is hashed before
storage, never logged, and must be changed on first login.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..authority import resolve_authority
from ..extensions import db
from ..models import CredentialNotice, Membership, OrganizationRole, Person, UserAccount
from .credential_service import hash_credential
from .notification_service import TEMPLATE_CREDENTIALS_ISSUED, notify

logger = logging.getLogger(__name__)


EVENT_GRANT = "GRANT"
EVENT_CHANGE = "CHANGE"
EVENT_REVOKE = "REVOKE"
VALID_EVENT_KINDS = {EVENT_GRANT, EVENT_CHANGE, EVENT_REVOKE}

# Outcome codes carried on ProvisioningResult.action
ACTION_SKIPPED = "SKIPPED"
ACTION_MISSING_EMAIL = "MISSING_EMAIL"
ACTION_EXISTING = "EXISTING"
ACTION_CREATED = "CREATED"
ACTION_ROLE_UPDATED = "ROLE_UPDATED"
ACTION_REACTIVATED = "REACTIVATED"
ACTION_DEACTIVATED = "DEACTIVATED"
ACTION_RETAINED = "RETAINED"
ACTION_UNCHANGED = "UNCHANGED"


@dataclass(frozen=True)
class MembershipEvent:
    kind: str
    person_id: int
    role_name: str | None
    previous_role_name: str | None = None
    membership_id: int | None = None
    actor_user_id: int | None = None


@dataclass
class ProvisioningResult:
    action: str
    account: UserAccount | None = None

    @property
    def missing_email(self) -> bool:
        return self.action == ACTION_MISSING_EMAIL

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "account_id": self.account.id if self.account else None,
            "missing_email": self.missing_email,
        }


def normalize_email(email: str | None) -> str | None:
    if not email:
        return None
    email = email.strip().lower()
    return email or None


def _find_account(email: str) -> UserAccount | None:
    return db.session.query(UserAccount).filter_by(email=email).first()


def _create_account(person: Person, email: str, role_name: str) -> ProvisioningResult:
    """
    Atomic find-or-create keyed on the unique email.

    A concurrent creator wins the unique constraint; the loser's savepoint
    is rolled back and the winner's row is returned instead.
    """
    profile = resolve_authority(role_name)

    account = UserAccount(
        tenant_id=person.tenant_id,
        person_id=person.id,
        email=email,
        name=person.name,
        phone=person.phone,
        system_role=profile.system_role,
        credential_hash=hash_credential(email),
        must_change_credential=True,
        last_credential_change_at=None,
        is_active=True,
    )

    nested = db.session.begin_nested()
    try:
        db.session.add(account)
        db.session.flush()
        nested.commit()
    except IntegrityError:
        nested.rollback()
        existing = _find_account(email)
        if existing is None:
            raise
        logger.info(
            "User account already exists",
            extra={"person_id": person.id, "account_id": existing.id, "action": "user_account_exists"},
        )
        return ProvisioningResult(ACTION_EXISTING, existing)

    logger.info(
        "User account created",
        extra={
            "account_id": account.id,
            "person_id": person.id,
            "system_role": profile.system_role,
            "role_name": profile.role_name,
            "authority_tier": profile.authority_tier,
            "action": "user_account_created",
        },
    )

    _issue_credential_notice(account, person, profile)
    return ProvisioningResult(ACTION_CREATED, account)


def _issue_credential_notice(account: UserAccount, person: Person, profile) -> None:
    notice = CredentialNotice(
        account_id=account.id,
        person_id=person.id,
        has_phone=bool(person.phone),
        role_name=profile.role_name,
        role_description=profile.description,
    )
    db.session.add(notice)

    notify(
        person.id,
        TEMPLATE_CREDENTIALS_ISSUED,
        {
            "name": person.name,
            "email": account.email,
            "role_name": profile.role_name,
            "role_description": profile.description,
            "has_phone": bool(person.phone),
        },
        account_id=account.id,
    )

    logger.info(
        "Login credentials prepared for sending",
        extra={
            "account_id": account.id,
            "person_id": person.id,
            "has_phone": bool(person.phone),
            "role_name": profile.role_name,
            "action": "credentials_prepared",
        },
    )


def _reactivate(account: UserAccount, person: Person) -> None:
    account.is_active = True
    logger.info(
        "User account reactivated",
        extra={"account_id": account.id, "person_id": person.id, "action": "user_account_reactivated"},
    )


def _grant(person: Person, role_name: str | None) -> ProvisioningResult:
    profile = resolve_authority(role_name)
    if not profile.needs_account:
        logger.info(
            "User account not required for role",
            extra={"person_id": person.id, "role_name": profile.role_name, "action": "skip_user_creation"},
        )
        return ProvisioningResult(ACTION_SKIPPED)

    email = normalize_email(person.email)
    if not email:
        logger.warning(
            "Cannot create user account - no email",
            extra={"person_id": person.id, "role_name": profile.role_name, "action": "user_creation_failed_no_email"},
        )
        return ProvisioningResult(ACTION_MISSING_EMAIL)

    existing = _find_account(email)
    if existing is not None and not existing.is_active:
        # Re-appointed after a revoke: same credential and system role, active again
        _reactivate(existing, person)
        return ProvisioningResult(ACTION_REACTIVATED, existing)
    if existing is not None:
        logger.info(
            "User account already exists",
            extra={"person_id": person.id, "account_id": existing.id, "action": "user_account_exists"},
        )
        return ProvisioningResult(ACTION_EXISTING, existing)

    return _create_account(person, email, role_name)


def _change(person: Person, role_name: str | None, previous_role_name: str | None) -> ProvisioningResult:
    profile = resolve_authority(role_name)
    email = normalize_email(person.email)
    account = _find_account(email) if email else None

    if account is None:
        if profile.needs_account:
            return _grant(person, role_name)
        return ProvisioningResult(ACTION_UNCHANGED)

    action = ACTION_UNCHANGED

    if account.system_role != profile.system_role:
        previous = account.system_role
        account.system_role = profile.system_role
        action = ACTION_ROLE_UPDATED
        logger.info(
            "User role updated",
            extra={
                "account_id": account.id,
                "person_id": person.id,
                "previous_system_role": previous,
                "system_role": profile.system_role,
                "previous_role_name": resolve_authority(previous_role_name).role_name,
                "role_name": profile.role_name,
                "action": "user_role_updated",
            },
        )

    if not account.is_active and profile.needs_account:
        _reactivate(account, person)
        action = ACTION_REACTIVATED

    return ProvisioningResult(action, account)


def _has_other_qualifying_membership(person_id: int, excluded_membership_id: int | None) -> bool:
    query = (
        db.session.query(OrganizationRole.name)
        .join(Membership, Membership.role_id == OrganizationRole.id)
        .filter(Membership.person_id == person_id, Membership.is_active.is_(True))
    )
    if excluded_membership_id is not None:
        query = query.filter(Membership.id != excluded_membership_id)

    return any(resolve_authority(name).needs_account for (name,) in query.all())


def _revoke(person: Person, role_name: str | None, membership_id: int | None) -> ProvisioningResult:
    profile = resolve_authority(role_name)
    if not profile.needs_account:
        return ProvisioningResult(ACTION_SKIPPED)

    email = normalize_email(person.email)
    account = _find_account(email) if email else None
    if account is None:
        return ProvisioningResult(ACTION_UNCHANGED)

    if _has_other_qualifying_membership(person.id, membership_id):
        return ProvisioningResult(ACTION_RETAINED, account)

    if account.is_active:
        account.is_active = False
        logger.info(
            "User account deactivated",
            extra={
                "account_id": account.id,
                "person_id": person.id,
                "removed_role": profile.role_name,
                "action": "user_account_deactivated",
            },
        )
    return ProvisioningResult(ACTION_DEACTIVATED, account)


def reconcile(event: MembershipEvent) -> ProvisioningResult:
    """Apply a membership event to the person's login account."""
    if event.kind not in VALID_EVENT_KINDS:
        raise ValueError(f"Unknown membership event kind: {event.kind}")

    person = db.session.get(Person, event.person_id)
    if person is None:
        raise ValueError(f"Person {event.person_id} not found")

    if event.kind == EVENT_GRANT:
        return _grant(person, event.role_name)
    if event.kind == EVENT_CHANGE:
        return _change(person, event.role_name, event.previous_role_name)
    return _revoke(person, event.role_name, event.membership_id)


def reconcile_account(event: MembershipEvent) -> UserAccount | None:
    """
    Returns the affected account, or None when no account applies
    (role needs none, or the person has no email).
    """
    return reconcile(event).account
