# Overview: Flask API routes for unit memberships and their history.

"""
Membership Routes

Every mutation answers with:
{
    "membership": {...},
    "account": {"action": "...", "account": {...}} | null,
    "warnings": ["MISSING_EMAIL"]     // when a qualifying role found no email
}

A MISSING_EMAIL warning never fails the request: the membership is saved
and the account is issued once the person has an email.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import FundflowError, NotFoundError
from ..services import hierarchy_service, membership_service
from ..validation import coerce_bool, coerce_date, coerce_int, require_fields

memberships_bp = Blueprint("memberships", __name__, url_prefix="/api/memberships")


def _scoped_membership(membership_id: int):
    membership = membership_service.get_membership(membership_id)
    if membership.unit.tenant_id != g.tenant_id:
        raise NotFoundError("Membership not found")
    return membership


@memberships_bp.get("")
@require_auth
def list_memberships_route():
    """List a unit's memberships: ?unit_id=...&include_inactive=true"""
    try:
        unit_id = request.args.get("unit_id")
        if not unit_id:
            return jsonify({"error": "unit_id is required", "code": "VALIDATION_ERROR"}), 400
        unit = hierarchy_service.get_unit(coerce_int(unit_id, "unit_id"), g.tenant_id)
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        memberships = membership_service.list_unit_memberships(unit.id, include_inactive=include_inactive)
        return jsonify({"memberships": [m.to_dict() for m in memberships]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@memberships_bp.post("")
@require_auth
@require_admin
def add_membership_route():
    """
    Request body:
    {
        "person_id": 7,
        "unit_id": 3,
        "role_id": 4,            // optional
        "is_primary": true,      // optional
        "join_date": "2024-03-01",
        "notes": "..."
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "person_id", "unit_id")
        person = membership_service.get_person(coerce_int(data["person_id"], "person_id"), g.tenant_id)
        role_id = data.get("role_id")
        result = membership_service.add_membership(
            person.id,
            coerce_int(data["unit_id"], "unit_id"),
            role_id=coerce_int(role_id, "role_id") if role_id is not None else None,
            is_primary=coerce_bool(data.get("is_primary", False), "is_primary"),
            join_date=coerce_date(data.get("join_date"), "join_date"),
            notes=data.get("notes"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to add membership")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.get("/<int:membership_id>")
@require_auth
def get_membership_route(membership_id: int):
    try:
        return jsonify({"membership": _scoped_membership(membership_id).to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@memberships_bp.patch("/<int:membership_id>/role")
@require_auth
@require_admin
def change_role_route(membership_id: int):
    """Request body: {"role_id": 5 | null, "reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        if "role_id" not in data:
            return jsonify({"error": "role_id is required (null clears the role)", "code": "VALIDATION_ERROR"}), 400
        _scoped_membership(membership_id)
        role_id = data["role_id"]
        result = membership_service.change_membership_role(
            membership_id,
            coerce_int(role_id, "role_id") if role_id is not None else None,
            reason=data.get("reason"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to change membership role")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.patch("/<int:membership_id>/primary")
@require_auth
@require_admin
def set_primary_route(membership_id: int):
    try:
        data = require_fields(request.get_json(silent=True), "is_primary")
        _scoped_membership(membership_id)
        result = membership_service.set_primary(
            membership_id,
            coerce_bool(data["is_primary"], "is_primary"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to set primary membership")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.patch("/<int:membership_id>/notes")
@require_auth
@require_admin
def update_notes_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        _scoped_membership(membership_id)
        result = membership_service.update_notes(
            membership_id,
            data.get("notes"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update membership notes")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.patch("/<int:membership_id>/dates")
@require_auth
@require_admin
def update_dates_route(membership_id: int):
    """Request body: {"join_date": "YYYY-MM-DD", "end_date": "YYYY-MM-DD"} (either optional)"""
    try:
        data = request.get_json(silent=True) or {}
        _scoped_membership(membership_id)
        result = membership_service.update_membership_dates(
            membership_id,
            join_date=coerce_date(data.get("join_date"), "join_date"),
            end_date=coerce_date(data.get("end_date"), "end_date"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update membership dates")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.post("/<int:membership_id>/end")
@require_auth
@require_admin
def end_membership_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        _scoped_membership(membership_id)
        result = membership_service.end_membership(
            membership_id,
            end_date=coerce_date(data.get("end_date"), "end_date"),
            reason=data.get("reason"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to end membership")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.post("/<int:membership_id>/reactivate")
@require_auth
@require_admin
def reactivate_membership_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        _scoped_membership(membership_id)
        result = membership_service.reactivate_membership(
            membership_id,
            reason=data.get("reason"),
            actor_user_id=g.current_account.id,
        )
        return jsonify(result.to_dict()), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to reactivate membership")
        return jsonify({"error": "Internal server error"}), 500


@memberships_bp.get("/<int:membership_id>/history")
@require_auth
def history_route(membership_id: int):
    try:
        _scoped_membership(membership_id)
        history = membership_service.get_membership_history(membership_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
