# Overview: Request and authority decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .authority import SystemRole
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _authenticate(f, *, allow_pending_credential: bool):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required", "code": "AUTH_REQUIRED"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "AUTH_REQUIRED"}), 401

        if context.account.must_change_credential and not allow_pending_credential:
            return jsonify({
                "error": "Password change required before continuing",
                "code": "CREDENTIAL_CHANGE_REQUIRED",
                "affordance": "fix-input",
            }), 403

        g.current_account = context.account
        g.tenant_id = context.tenant_id
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require a valid bearer session and establish tenant context.

    Sets g.current_account, g.tenant_id, g.session_context.

    Accounts still holding their one-time credential are refused with 403
    CREDENTIAL_CHANGE_REQUIRED; see require_session.
    """
    return _authenticate(f, allow_pending_credential=False)


def require_session(f):
    """Like require_auth, but lets must-change-credential accounts through."""
    return _authenticate(f, allow_pending_credential=True)


def require_system_role(*roles: str):
    """
    Require one of the given system roles. SUPER_ADMIN always passes.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            account = getattr(g, "current_account", None)
            if account is None:
                return jsonify({"error": "Authentication required", "code": "AUTH_REQUIRED"}), 401

            if account.system_role != SystemRole.SUPER_ADMIN and account.system_role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "AUTHORITY_DENIED",
                    "affordance": "contact-admin",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    return require_system_role(*SystemRole.ADMIN_ROLES)(f)
