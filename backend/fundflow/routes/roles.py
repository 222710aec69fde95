# Overview: Flask API routes for the tenant's organization role catalogue.

from flask import Blueprint, current_app, g, jsonify, request

from ..authority import resolve_authority
from ..decorators import require_admin, require_auth
from ..errors import FundflowError
from ..services import hierarchy_service
from ..validation import coerce_bool, coerce_int, require_fields

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


def _role_dict(role) -> dict:
    data = role.to_dict()
    data["authority"] = resolve_authority(role.name).to_dict()
    return data


@roles_bp.get("")
@require_auth
def list_roles_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    roles = hierarchy_service.list_roles(g.tenant_id, active_only=active_only)
    return jsonify({"roles": [_role_dict(r) for r in roles]}), 200


@roles_bp.post("")
@require_auth
@require_admin
def create_role_route():
    """
    Request body:
    {
        "name": "회계",
        "english_name": "Treasurer",   // optional
        "description": "...",          // optional
        "level": 60,                   // optional, default 0
        "is_leadership": false         // optional
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "name")
        role = hierarchy_service.create_role(
            g.tenant_id,
            data["name"],
            level=coerce_int(data.get("level", 0), "level"),
            is_leadership=coerce_bool(data.get("is_leadership", False), "is_leadership"),
            english_name=data.get("english_name"),
            description=data.get("description"),
        )
        return jsonify({"role": _role_dict(role)}), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create role")
        return jsonify({"error": "Internal server error"}), 500


@roles_bp.patch("/<int:role_id>")
@require_auth
@require_admin
def update_role_route(role_id: int):
    try:
        data = request.get_json(silent=True) or {}
        hierarchy_service.get_role(role_id, g.tenant_id)
        if "level" in data:
            data["level"] = coerce_int(data["level"], "level")
        for key in ("is_leadership", "is_active"):
            if key in data:
                data[key] = coerce_bool(data[key], key)
        role = hierarchy_service.update_role(role_id, **data)
        return jsonify({"role": _role_dict(role)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update role")
        return jsonify({"error": "Internal server error"}), 500


@roles_bp.post("/seed")
@require_auth
@require_admin
def seed_roles_route():
    try:
        created = hierarchy_service.seed_standard_roles(g.tenant_id)
        return jsonify({"created": created}), 200
    except Exception:
        current_app.logger.exception("Failed to seed standard roles")
        return jsonify({"error": "Internal server error"}), 500
