# Overview: Flask API routes for login sessions and credential changes.

"""
Authentication Routes

Accounts are created by the provisioner with a one-time credential
(must_change_credential=True). Such an account can log in, read /me and
change its credential; every other route answers 403
CREDENTIAL_CHANGE_REQUIRED until it does.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_session
from ..errors import FundflowError
from ..services import credential_service, session_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password and issue a session token.

    Request body:
    {
        "email": "treasurer@example.org",
        "password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        email = (data.get("email") or "").strip()
        password = data.get("password") or ""

        if not email or not password:
            return jsonify({"error": "email and password are required", "code": "VALIDATION_ERROR"}), 400

        account = credential_service.authenticate(email, password)
        if not account:
            current_app.logger.info("Failed login", extra={"email": email.lower()})
            return jsonify({"error": "Invalid credentials", "code": "AUTH_REQUIRED"}), 401

        session, token = session_service.create_session(account.id)

        return jsonify({
            "account": account.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "must_change_credential": account.must_change_credential,
            "message": "Login successful",
        }), 200

    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to login")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_session
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_session
def me_route():
    account = g.current_account
    return jsonify({
        "account": account.to_dict(),
        "tenant_id": g.tenant_id,
        "must_change_credential": account.must_change_credential,
    }), 200


@auth_bp.post("/change-credential")
@require_session
def change_credential_route():
    """
    Replace the caller's password. Every other session of the account is
    revoked; the current one stays valid.

    Request body:
    {
        "current_password": "...",
        "new_password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        current = data.get("current_password") or ""
        new = data.get("new_password") or ""
        if not current or not new:
            return jsonify({
                "error": "current_password and new_password are required",
                "code": "VALIDATION_ERROR",
            }), 400

        account = credential_service.change_credential(g.current_account.id, current, new)
        revoked = session_service.revoke_all_account_sessions(
            account.id,
            reason="Credential changed",
            keep_session_id=g.session_context.session.id,
        )

        return jsonify({
            "account": account.to_dict(),
            "revoked_sessions": revoked,
            "message": "Password changed",
        }), 200

    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to change credential")
        return jsonify({"error": "Internal server error"}), 500
