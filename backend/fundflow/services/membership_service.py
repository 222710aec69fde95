# Overview: Service-layer operations for people and unit memberships.

"""
Membership management.

INVARIANTS:
- A person has at most one active membership per unit
- A person has at most one active primary membership
- A membership's role must be available at its unit (direct or inherited)
- Memberships are ended, never deleted
- Every mutated field appends one MembershipHistory row

Role grant, change and end call the account provisioner before the commit,
so the membership write and the account write land together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from functools import wraps

from ..errors import (
    DuplicateMembershipError,
    NotFoundError,
    StructuralIntegrityError,
    ValidationError,
)
from ..extensions import db
from ..models import Membership, MembershipHistory, OrganizationRole, OrganizationUnit, Person
from fundflow.time_utils import to_iso_date, utc_today
from .concurrency import lock_for_update, unique_guard, versioned_write
from .hierarchy_service import get_unit, is_role_available
from .provisioning_service import (
    EVENT_CHANGE,
    EVENT_GRANT,
    EVENT_REVOKE,
    MembershipEvent,
    ProvisioningResult,
    normalize_email,
    reconcile,
)

logger = logging.getLogger(__name__)


CHANGE_CREATED = "CREATED"
CHANGE_ROLE = "ROLE_CHANGED"
CHANGE_PRIMARY = "PRIMARY_CHANGED"
CHANGE_JOIN_DATE = "JOIN_DATE_CHANGED"
CHANGE_END_DATE = "END_DATE_CHANGED"
CHANGE_NOTES = "NOTES_CHANGED"
CHANGE_ACTIVATED = "ACTIVATED"
CHANGE_DEACTIVATED = "DEACTIVATED"

STALE_MEMBERSHIP = "Membership was changed by another request; reload and retry"

# Partial unique index on memberships(person_id) WHERE is_active AND is_primary
ONE_PRIMARY_INDEX = "uq_memberships_one_active_primary"


@dataclass
class MembershipResult:
    membership: Membership
    provisioning: ProvisioningResult | None = None

    @property
    def warnings(self) -> list[str]:
        if self.provisioning is not None and self.provisioning.missing_email:
            return ["MISSING_EMAIL"]
        return []

    def to_dict(self) -> dict:
        return {
            "membership": self.membership.to_dict(),
            "account": self.provisioning.to_dict() if self.provisioning else None,
            "warnings": self.warnings,
        }


# -- People --

def create_person(tenant_id: int, name: str, *, email: str | None = None, phone: str | None = None) -> Person:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Person name is required")

    person = Person(
        tenant_id=tenant_id,
        name=name,
        email=normalize_email(email),
        phone=(phone or "").strip() or None,
    )
    db.session.add(person)
    db.session.commit()
    return person


def get_person(person_id: int, tenant_id: int | None = None) -> Person:
    person = db.session.get(Person, person_id)
    if person is None or (tenant_id is not None and person.tenant_id != tenant_id):
        raise NotFoundError("Person not found")
    return person


def update_person(person_id: int, *, name: str | None = None, email: str | None = None, phone: str | None = None) -> Person:
    """Contact edits do not touch an existing account; its email stays the login key."""
    person = get_person(person_id)
    if name is not None:
        if not name.strip():
            raise ValidationError("Person name cannot be blank")
        person.name = name.strip()
    if email is not None:
        person.email = normalize_email(email)
    if phone is not None:
        person.phone = phone.strip() or None
    db.session.commit()
    return person


def list_people(tenant_id: int) -> list[Person]:
    return db.session.query(Person).filter_by(tenant_id=tenant_id).order_by(Person.name.asc()).all()


# -- Helpers --

def _record(membership: Membership, change_type: str, previous, new, *, actor_user_id: int | None, reason: str | None = None) -> None:
    def _text(value):
        if value is None:
            return None
        if isinstance(value, date):
            return to_iso_date(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    db.session.add(
        MembershipHistory(
            membership_id=membership.id,
            change_type=change_type,
            previous_value=_text(previous),
            new_value=_text(new),
            reason=reason,
            changed_by_user_id=actor_user_id,
        )
    )


def _load_for_update(membership_id: int) -> Membership:
    membership = lock_for_update(db.session.query(Membership).filter_by(id=membership_id)).first()
    if membership is None:
        raise NotFoundError("Membership not found")
    return membership


def _role_name(role_id: int | None) -> str | None:
    if role_id is None:
        return None
    role = db.session.get(OrganizationRole, role_id)
    return role.name if role else None


def _require_role_available(unit: OrganizationUnit, role_id: int) -> OrganizationRole:
    role = db.session.get(OrganizationRole, role_id)
    if role is None or role.tenant_id != unit.tenant_id:
        raise NotFoundError("Role not found")
    if not role.is_active:
        raise ValidationError(f"Role '{role.name}' is inactive")
    if not is_role_available(unit.id, role.id):
        raise ValidationError(f"Role '{role.name}' is not available in unit '{unit.name}'")
    return role


def _require_no_other_primary(person_id: int, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Membership).filter(
        Membership.person_id == person_id,
        Membership.is_active.is_(True),
        Membership.is_primary.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Membership.id != exclude_id)
    if query.first() is not None:
        raise StructuralIntegrityError("Person already has an active primary membership")


def _require_no_duplicate(person_id: int, unit_id: int, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Membership).filter_by(person_id=person_id, unit_id=unit_id, is_active=True)
    if exclude_id is not None:
        query = query.filter(Membership.id != exclude_id)
    if query.first() is not None:
        raise DuplicateMembershipError("Person is already an active member of this unit")


def _provision(kind: str, membership: Membership, role_name, previous_role_name, actor_user_id) -> ProvisioningResult:
    return reconcile(
        MembershipEvent(
            kind=kind,
            person_id=membership.person_id,
            role_name=role_name,
            previous_role_name=previous_role_name,
            membership_id=membership.id,
            actor_user_id=actor_user_id,
        )
    )


def _membership_write(f):
    """
    Lost version races and a second active primary (caught by the store when
    two writers pass the pre-check together) become domain errors.
    """
    @wraps(f)
    def wrapper(*args, **kwargs):
        with versioned_write(STALE_MEMBERSHIP), unique_guard(
            ONE_PRIMARY_INDEX,
            "memberships.person_id",
            "Person already has an active primary membership",
        ):
            return f(*args, **kwargs)
    return wrapper


def _commit(result: MembershipResult) -> MembershipResult:
    db.session.commit()
    if result.warnings:
        logger.warning(
            "Membership saved without login account",
            extra={"membership_id": result.membership.id, "warnings": result.warnings},
        )
    return result


# -- Memberships --

@_membership_write
def add_membership(
    person_id: int,
    unit_id: int,
    *,
    role_id: int | None = None,
    is_primary: bool = False,
    join_date: date | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> MembershipResult:
    person = get_person(person_id)
    unit = get_unit(unit_id, person.tenant_id)

    role = _require_role_available(unit, role_id) if role_id is not None else None
    _require_no_duplicate(person.id, unit.id)
    if is_primary:
        _require_no_other_primary(person.id)

    membership = Membership(
        person_id=person.id,
        unit_id=unit.id,
        role_id=role.id if role else None,
        is_primary=bool(is_primary),
        join_date=join_date or utc_today(),
        notes=notes,
        is_active=True,
    )
    db.session.add(membership)
    db.session.flush()

    _record(membership, CHANGE_CREATED, None, role.name if role else None, actor_user_id=actor_user_id)

    provisioning = None
    if role is not None:
        provisioning = _provision(EVENT_GRANT, membership, role.name, None, actor_user_id)

    logger.info(
        "Membership created",
        extra={"membership_id": membership.id, "person_id": person.id, "unit_id": unit.id, "role_id": membership.role_id},
    )
    return _commit(MembershipResult(membership, provisioning))


@_membership_write
def change_membership_role(
    membership_id: int,
    role_id: int | None,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> MembershipResult:
    membership = _load_for_update(membership_id)
    if not membership.is_active:
        raise ValidationError("Cannot change the role of an ended membership")

    if membership.role_id == role_id:
        return MembershipResult(membership)

    previous_name = _role_name(membership.role_id)
    new_role = _require_role_available(membership.unit, role_id) if role_id is not None else None
    new_name = new_role.name if new_role else None

    membership.role_id = new_role.id if new_role else None
    _record(membership, CHANGE_ROLE, previous_name, new_name, actor_user_id=actor_user_id, reason=reason)
    db.session.flush()

    if previous_name is None:
        provisioning = _provision(EVENT_GRANT, membership, new_name, None, actor_user_id)
    elif new_name is None:
        provisioning = _provision(EVENT_REVOKE, membership, previous_name, None, actor_user_id)
    else:
        provisioning = _provision(EVENT_CHANGE, membership, new_name, previous_name, actor_user_id)

    return _commit(MembershipResult(membership, provisioning))


@_membership_write
def set_primary(membership_id: int, is_primary: bool, *, actor_user_id: int | None = None) -> MembershipResult:
    membership = _load_for_update(membership_id)
    is_primary = bool(is_primary)
    if membership.is_primary == is_primary:
        return MembershipResult(membership)

    if is_primary:
        if not membership.is_active:
            raise ValidationError("An ended membership cannot be primary")
        _require_no_other_primary(membership.person_id, exclude_id=membership.id)

    _record(membership, CHANGE_PRIMARY, membership.is_primary, is_primary, actor_user_id=actor_user_id)
    membership.is_primary = is_primary
    return _commit(MembershipResult(membership))


@_membership_write
def update_notes(membership_id: int, notes: str | None, *, actor_user_id: int | None = None) -> MembershipResult:
    membership = _load_for_update(membership_id)
    if membership.notes == notes:
        return MembershipResult(membership)

    _record(membership, CHANGE_NOTES, membership.notes, notes, actor_user_id=actor_user_id)
    membership.notes = notes
    return _commit(MembershipResult(membership))


def _deactivate(membership: Membership, end_date: date, *, actor_user_id, reason) -> ProvisioningResult | None:
    if membership.end_date != end_date:
        _record(membership, CHANGE_END_DATE, membership.end_date, end_date, actor_user_id=actor_user_id, reason=reason)
        membership.end_date = end_date
    _record(membership, CHANGE_DEACTIVATED, True, False, actor_user_id=actor_user_id, reason=reason)
    membership.is_active = False
    if membership.is_primary:
        _record(membership, CHANGE_PRIMARY, True, False, actor_user_id=actor_user_id, reason=reason)
        membership.is_primary = False
    db.session.flush()

    role_name = _role_name(membership.role_id)
    if role_name is None:
        return None
    return _provision(EVENT_REVOKE, membership, role_name, None, actor_user_id)


@_membership_write
def update_membership_dates(
    membership_id: int,
    *,
    join_date: date | None = None,
    end_date: date | None = None,
    actor_user_id: int | None = None,
) -> MembershipResult:
    """
    Setting an end date on an active membership ends it, the same as
    end_membership.
    """
    membership = _load_for_update(membership_id)

    new_join = join_date or membership.join_date
    new_end = end_date or membership.end_date
    if new_end is not None and new_end < new_join:
        raise ValidationError("end_date cannot be before join_date")

    if join_date is not None and join_date != membership.join_date:
        _record(membership, CHANGE_JOIN_DATE, membership.join_date, join_date, actor_user_id=actor_user_id)
        membership.join_date = join_date

    provisioning = None
    if end_date is not None and end_date != membership.end_date:
        if membership.is_active:
            provisioning = _deactivate(membership, end_date, actor_user_id=actor_user_id, reason=None)
        else:
            _record(membership, CHANGE_END_DATE, membership.end_date, end_date, actor_user_id=actor_user_id)
            membership.end_date = end_date

    return _commit(MembershipResult(membership, provisioning))


@_membership_write
def end_membership(
    membership_id: int,
    *,
    end_date: date | None = None,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> MembershipResult:
    membership = _load_for_update(membership_id)
    if not membership.is_active:
        raise ValidationError("Membership has already ended")

    end_date = end_date or utc_today()
    if end_date < membership.join_date:
        raise ValidationError("end_date cannot be before join_date")

    provisioning = _deactivate(membership, end_date, actor_user_id=actor_user_id, reason=reason)

    logger.info("Membership ended", extra={"membership_id": membership.id, "person_id": membership.person_id})
    return _commit(MembershipResult(membership, provisioning))


@_membership_write
def reactivate_membership(membership_id: int, *, reason: str | None = None, actor_user_id: int | None = None) -> MembershipResult:
    membership = _load_for_update(membership_id)
    if membership.is_active:
        raise ValidationError("Membership is already active")

    _require_no_duplicate(membership.person_id, membership.unit_id, exclude_id=membership.id)
    if membership.role_id is not None:
        _require_role_available(membership.unit, membership.role_id)

    _record(membership, CHANGE_ACTIVATED, False, True, actor_user_id=actor_user_id, reason=reason)
    membership.is_active = True
    if membership.end_date is not None:
        _record(membership, CHANGE_END_DATE, membership.end_date, None, actor_user_id=actor_user_id, reason=reason)
        membership.end_date = None
    db.session.flush()

    provisioning = None
    role_name = _role_name(membership.role_id)
    if role_name is not None:
        provisioning = _provision(EVENT_GRANT, membership, role_name, None, actor_user_id)

    return _commit(MembershipResult(membership, provisioning))


def get_membership(membership_id: int) -> Membership:
    membership = db.session.get(Membership, membership_id)
    if membership is None:
        raise NotFoundError("Membership not found")
    return membership


def get_membership_history(membership_id: int) -> list[MembershipHistory]:
    get_membership(membership_id)
    return (
        db.session.query(MembershipHistory)
        .filter_by(membership_id=membership_id)
        .order_by(MembershipHistory.id.asc())
        .all()
    )


def list_unit_memberships(unit_id: int, *, include_inactive: bool = False) -> list[Membership]:
    get_unit(unit_id)
    query = (
        db.session.query(Membership)
        .join(Person, Person.id == Membership.person_id)
        .outerjoin(OrganizationRole, OrganizationRole.id == Membership.role_id)
        .filter(Membership.unit_id == unit_id)
    )
    if not include_inactive:
        query = query.filter(Membership.is_active.is_(True))
    return query.order_by(
        OrganizationRole.level.desc(),
        Membership.is_primary.desc(),
        Person.name.asc(),
    ).all()


def list_person_memberships(person_id: int, *, include_inactive: bool = False) -> list[Membership]:
    get_person(person_id)
    query = db.session.query(Membership).filter(Membership.person_id == person_id)
    if not include_inactive:
        query = query.filter(Membership.is_active.is_(True))
    return query.order_by(Membership.is_primary.desc(), Membership.join_date.asc()).all()
