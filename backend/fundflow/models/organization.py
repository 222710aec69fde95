from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from fundflow.time_utils import to_utc_z, to_iso_date


# Unit level tiers, root first. A child's level is never above its parent's.
UNIT_LEVELS = ("LEVEL_1", "LEVEL_2", "LEVEL_3", "LEVEL_4", "LEVEL_5")


class OrganizationUnit(db.Model):
    """
    A node of the organization tree (committee, parish, department, team).

    DESIGN:
    - Parent-pointer tree; the child does not own the parent
    - Exactly one root (parent_id IS NULL) per tenant
    - level must be >= parent's level (LEVEL_1 is the root tier)
    - All structural changes go through hierarchy_service, which validates
      acyclicity with a bounded ancestor walk
    """
    __tablename__ = "organization_units"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_units_tenant_code"),
        db.Index("ix_units_tenant_parent", "tenant_id", "parent_id"),
        # One root per tenant, enforced by the store as well as hierarchy_service
        db.Index(
            "uq_units_one_root_per_tenant",
            "tenant_id",
            unique=True,
            sqlite_where=db.text("parent_id IS NULL"),
            postgresql_where=db.text("parent_id IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=True, index=True)
    level = db.Column(db.String(16), nullable=False, default="LEVEL_1")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("units", lazy=True))
    parent = db.relationship("OrganizationUnit", remote_side=[id], backref=db.backref("children", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<OrganizationUnit id={self.id} name={self.name!r} parent_id={self.parent_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "parent_id": self.parent_id,
            "level": self.level,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class OrganizationRole(db.Model):
    """
    A position that can be held inside a unit (e.g. 회계, 부장, 위원장).

    level: higher = more senior. Approver search prefers higher levels.
    Editing level or is_leadership never alters approval steps that were
    already built; steps snapshot the authority tier at creation time.
    """
    __tablename__ = "organization_roles"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    english_name = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    level = db.Column(db.Integer, nullable=False, default=0)
    is_leadership = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("roles", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "english_name": self.english_name,
            "description": self.description,
            "level": self.level,
            "is_leadership": self.is_leadership,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class RoleBinding(db.Model):
    """
    Direct (unit, role) binding: the role is usable in this unit.

    Only direct bindings are stored. Descendant units see the role through
    the ancestor walk in hierarchy_service.get_effective_roles, unless the
    binding was materialized with propagate_to_descendants.
    """
    __tablename__ = "role_bindings"
    __table_args__ = (
        db.UniqueConstraint("unit_id", "role_id", name="uq_role_bindings_unit_role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("organization_roles.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    unit = db.relationship("OrganizationUnit", backref=db.backref("role_bindings", lazy=True))
    role = db.relationship("OrganizationRole", backref=db.backref("bindings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "role_id": self.role_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Person(db.Model):
    """
    An organization member. Only some people get a login account.

    email identifies the person across system boundaries (UserAccount.email).
    """
    __tablename__ = "people"
    __table_args__ = (
        db.Index("ix_people_tenant_email", "tenant_id", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("people", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
        }


class Membership(db.Model):
    """
    Binds a person to a unit, optionally with a role.

    LIFECYCLE:
    - Created on assignment
    - Removal sets end_date and is_active=False; rows are never deleted
    - At most one active primary membership per person (enforced in
      membership_service before any write)
    """
    __tablename__ = "memberships"
    __table_args__ = (
        db.Index("ix_memberships_person_active", "person_id", "is_active"),
        db.Index("ix_memberships_unit_active", "unit_id", "is_active"),
        # At most one active primary membership per person
        db.Index(
            "uq_memberships_one_active_primary",
            "person_id",
            unique=True,
            sqlite_where=db.text("is_active AND is_primary"),
            postgresql_where=db.text("is_active AND is_primary"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id"), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("organization_roles.id"), nullable=True, index=True)

    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    join_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    person = db.relationship("Person", backref=db.backref("memberships", lazy=True))
    unit = db.relationship("OrganizationUnit", backref=db.backref("memberships", lazy=True))
    role = db.relationship("OrganizationRole", backref=db.backref("memberships", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "person_name": self.person.name if self.person else None,
            "unit_id": self.unit_id,
            "unit_name": self.unit.name if self.unit else None,
            "role_id": self.role_id,
            "role_name": self.role.name if self.role else None,
            "is_primary": self.is_primary,
            "join_date": to_iso_date(self.join_date),
            "end_date": to_iso_date(self.end_date),
            "is_active": self.is_active,
            "notes": self.notes,
        }


class MembershipHistory(db.Model):
    """
    Change log for memberships.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    One row per mutated field, with the previous and new value.
    """
    __tablename__ = "membership_history"
    __table_args__ = (
        db.Index("ix_membership_history_membership", "membership_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    membership_id = db.Column(db.Integer, db.ForeignKey("memberships.id"), nullable=False, index=True)

    # CREATED, ROLE_CHANGED, PRIMARY_CHANGED, JOIN_DATE_CHANGED, END_DATE_CHANGED,
    # NOTES_CHANGED, ACTIVATED, DEACTIVATED
    change_type = db.Column(db.String(32), nullable=False, index=True)
    previous_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    reason = db.Column(db.Text, nullable=True)

    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    membership = db.relationship("Membership", backref=db.backref("history", lazy=True, order_by="MembershipHistory.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "membership_id": self.membership_id,
            "change_type": self.change_type,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "changed_by_user_id": self.changed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(MembershipHistory, "before_update")
def _block_history_update(mapper, connection, target) -> None:
    raise RuntimeError("membership_history rows are append-only")


@event.listens_for(MembershipHistory, "before_delete")
def _block_history_delete(mapper, connection, target) -> None:
    raise RuntimeError("membership_history rows are append-only")
