from __future__ import annotations

from ..extensions import db
from fundflow.time_utils import to_utc_z


class UserAccount(db.Model):
    """
    Login account for a person who holds an authority-bearing role.

    Accounts are issued by the account provisioner, never by hand for
    ordinary members. email is globally unique: it is the find-or-create key.

    LIFECYCLE:
    - Created active with a one-time credential and must_change_credential=True
    - system_role follows the person's role changes
    - Deactivated (never deleted) when no qualifying role remains
    """
    __tablename__ = "user_accounts"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_user_accounts_email"),
        db.Index("ix_user_accounts_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id"), nullable=True, index=True)

    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    # GENERAL_USER, MINISTER, BUDGET_MANAGER, DEPARTMENT_ACCOUNTANT,
    # DEPARTMENT_HEAD, COMMITTEE_CHAIR, SUPER_ADMIN
    system_role = db.Column(db.String(32), nullable=False, default="GENERAL_USER", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Bcrypt hash; plaintext is never stored or logged
    credential_hash = db.Column(db.String(255), nullable=False)
    must_change_credential = db.Column(db.Boolean, nullable=False, default=True)
    last_credential_change_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tenant = db.relationship("Tenant", backref=db.backref("accounts", lazy=True))
    person = db.relationship("Person", backref=db.backref("accounts", lazy=True))

    def __repr__(self) -> str:
        return f"<UserAccount id={self.id} email={self.email!r} role={self.system_role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "person_id": self.person_id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "system_role": self.system_role,
            "is_active": self.is_active,
            "must_change_credential": self.must_change_credential,
            "last_credential_change_at": to_utc_z(self.last_credential_change_at) if self.last_credential_change_at else None,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class CredentialNotice(db.Model):
    """
    Record that a one-time credential was issued for an account.

    Delivery (SMS, email, printed slip) is handled outside the core;
    has_phone tells the delivering side which channel is available.
    """
    __tablename__ = "credential_notices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    person_id = db.Column(db.Integer, db.ForeignKey("people.id"), nullable=True, index=True)
    has_phone = db.Column(db.Boolean, nullable=False, default=False)
    role_name = db.Column(db.String(64), nullable=True)
    role_description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("UserAccount", backref=db.backref("credential_notices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "person_id": self.person_id,
            "has_phone": self.has_phone,
            "role_name": self.role_name,
            "role_description": self.role_description,
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer session for the HTTP boundary.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute timeout from SESSION_TTL_HOURS
    - Revocable on logout and on credential change
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_account_active", "account_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    account = db.relationship("UserAccount", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "tenant_id": self.tenant_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
