# Overview: Service-layer operations for session tokens.

"""
Session Token Management Service

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout from SESSION_TTL_HOURS
- Revocable on logout and on credential change
- Tenant context is captured at login and immutable for the session
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, Tenant, UserAccount
from fundflow.time_utils import utcnow


DEFAULT_TTL_HOURS = 24


@dataclass
class SessionContext:
    account: UserAccount
    session: SessionToken
    tenant_id: int


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    """
    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _ttl() -> timedelta:
    hours = DEFAULT_TTL_HOURS
    if has_app_context():
        hours = int(current_app.config.get("SESSION_TTL_HOURS", DEFAULT_TTL_HOURS))
    return timedelta(hours=hours)


def create_session(account_id: int) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    account = db.session.get(UserAccount, account_id)
    if not account:
        raise ValueError("Account not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        account_id=account.id,
        tenant_id=account.tenant_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _ttl(),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Returns None if:
    - Token is invalid, expired, or revoked
    - Account is deactivated
    - Tenant is deactivated

    Updates last_used_at on successful validation.
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    account = session.account
    if not account or not account.is_active:
        _revoke(session, "Account deactivated")
        db.session.commit()
        return None

    tenant = db.session.get(Tenant, session.tenant_id)
    if not tenant or not tenant.is_active:
        _revoke(session, "Tenant deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(account=account, session=session, tenant_id=session.tenant_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_account_sessions(account_id: int, reason: str, *, keep_session_id: int | None = None) -> int:
    """
    Revoke every active session of an account, optionally sparing one.

    Returns count of sessions revoked.
    """
    query = db.session.query(SessionToken).filter_by(account_id=account_id, is_revoked=False)
    if keep_session_id is not None:
        query = query.filter(SessionToken.id != keep_session_id)

    count = 0
    for session in query.all():
        _revoke(session, reason)
        count += 1

    db.session.commit()
    return count
