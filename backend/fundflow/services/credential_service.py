# Overview: Service-layer operations for login credentials; bcrypt hashing and verification.

"""
Credential hashing and login for user accounts.

SECURITY NOTES:
- Credentials hashed with bcrypt (cost factor from BCRYPT_ROUNDS)
- One-time credentials issued by the account provisioner skip the
  strength check; the account is flagged must_change_credential
- A chosen credential must meet validate_credential_strength
- Plaintext credentials are never logged
"""

from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app, has_app_context

from ..errors import AuthorityError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Tenant, UserAccount
from fundflow.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12


class CredentialValidationError(ValidationError):
    """The new credential does not meet strength requirements."""
    code = "WEAK_CREDENTIAL"


def validate_credential_strength(credential: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not isinstance(credential, str) or len(credential) < 8:
        raise CredentialValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", credential):
        raise CredentialValidationError("Password must contain at least one letter")

    if not re.search(r"\d", credential):
        raise CredentialValidationError("Password must contain at least one digit")


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def hash_credential(plaintext: str) -> str:
    """Hash with bcrypt; returns the hash as a str for storage."""
    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(plaintext.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_credential(plaintext: str, credential_hash: str) -> bool:
    """
    Timing-safe check through bcrypt.checkpw.

    A malformed stored hash counts as a mismatch.
    """
    if not plaintext or not credential_hash:
        return False
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), credential_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored credential hash is malformed")
        return False


def authenticate(email: str, plaintext: str) -> UserAccount | None:
    """
    Return the active account for email if the credential matches.

    Updates last_login_at on success.
    """
    if not email:
        return None

    account = db.session.query(UserAccount).filter(
        UserAccount.email == email.strip().lower(),
        UserAccount.is_active.is_(True),
    ).first()
    if not account:
        return None

    tenant = db.session.get(Tenant, account.tenant_id)
    if not tenant or not tenant.is_active:
        return None

    if not verify_credential(plaintext, account.credential_hash):
        return None

    account.last_login_at = utcnow()
    db.session.commit()
    return account


def change_credential(account_id: int, current: str, new: str) -> UserAccount:
    """
    Replace the account credential and clear must_change_credential.

    The caller revokes other sessions (see session_service).
    """
    account = db.session.get(UserAccount, account_id)
    if not account:
        raise NotFoundError("Account not found")

    if not verify_credential(current, account.credential_hash):
        raise AuthorityError("Current password is incorrect")

    validate_credential_strength(new)
    if current == new:
        raise CredentialValidationError("New password must differ from the current password")

    account.credential_hash = hash_credential(new)
    account.must_change_credential = False
    account.last_credential_change_at = utcnow()
    db.session.commit()

    logger.info("Credential changed", extra={"account_id": account.id})
    return account


def create_admin_account(*, tenant_id: int, email: str, name: str, credential: str) -> UserAccount:
    """Bootstrap a SUPER_ADMIN account outside the provisioning path."""
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")

    if db.session.query(UserAccount).filter_by(email=email).first():
        raise ValidationError(f"An account already exists for {email}")

    validate_credential_strength(credential)

    account = UserAccount(
        tenant_id=tenant_id,
        email=email,
        name=name,
        system_role="SUPER_ADMIN",
        credential_hash=hash_credential(credential),
        must_change_credential=False,
        is_active=True,
    )
    db.session.add(account)
    db.session.commit()
    return account
