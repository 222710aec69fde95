# Overview: Flask API routes for the organization tree, role bindings and people.

"""
Organization Routes

Reads are open to any authenticated account of the tenant; structure edits
require an administrator (SUPER_ADMIN or COMMITTEE_CHAIR).

All ids from the client are checked against the caller's tenant before use.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import FundflowError
from ..services import hierarchy_service, membership_service
from ..validation import coerce_bool, coerce_int, require_fields

organizations_bp = Blueprint("organizations", __name__, url_prefix="/api/organizations")


# -- Units --

@organizations_bp.get("/units")
@require_auth
def list_units_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    units = hierarchy_service.list_units(g.tenant_id, active_only=active_only)
    return jsonify({"units": [u.to_dict() for u in units]}), 200


@organizations_bp.get("/tree")
@require_auth
def tree_route():
    root = hierarchy_service.get_root_unit(g.tenant_id)
    if root is None:
        return jsonify({"tree": None}), 200
    return jsonify({"tree": hierarchy_service.get_unit_tree(root.id)}), 200


@organizations_bp.post("/units")
@require_auth
@require_admin
def create_unit_route():
    """
    Request body:
    {
        "name": "청년부",
        "parent_id": 1,          // required; the root is created with the tenant
        "level": "LEVEL_3",      // optional, defaults to one below the parent
        "code": "YOUTH"          // optional
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "name", "parent_id")
        unit = hierarchy_service.create_unit(
            g.tenant_id,
            data["name"],
            parent_id=coerce_int(data["parent_id"], "parent_id"),
            level=data.get("level"),
            code=data.get("code"),
        )
        return jsonify({"unit": unit.to_dict()}), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create organization unit")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.get("/units/<int:unit_id>")
@require_auth
def get_unit_route(unit_id: int):
    try:
        unit = hierarchy_service.get_unit(unit_id, g.tenant_id)
        data = unit.to_dict()
        data["ancestors"] = [u.to_dict() for u in hierarchy_service.get_ancestors(unit.id)]
        return jsonify({"unit": data}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@organizations_bp.patch("/units/<int:unit_id>")
@require_auth
@require_admin
def update_unit_route(unit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        hierarchy_service.get_unit(unit_id, g.tenant_id)
        unit = hierarchy_service.update_unit(
            unit_id,
            name=data.get("name"),
            code=data.get("code"),
            is_active=coerce_bool(data["is_active"], "is_active") if "is_active" in data else None,
        )
        return jsonify({"unit": unit.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update organization unit")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.post("/units/<int:unit_id>/move")
@require_auth
@require_admin
def move_unit_route(unit_id: int):
    try:
        data = request.get_json(silent=True) or {}
        hierarchy_service.get_unit(unit_id, g.tenant_id)
        parent_id = data.get("parent_id")
        unit = hierarchy_service.move_unit(
            unit_id,
            coerce_int(parent_id, "parent_id") if parent_id is not None else None,
        )
        return jsonify({"unit": unit.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to move organization unit")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.get("/units/<int:unit_id>/tree")
@require_auth
def unit_tree_route(unit_id: int):
    try:
        hierarchy_service.get_unit(unit_id, g.tenant_id)
        return jsonify({"tree": hierarchy_service.get_unit_tree(unit_id)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


# -- Role bindings --

@organizations_bp.get("/units/<int:unit_id>/roles")
@require_auth
def effective_roles_route(unit_id: int):
    """Roles usable in the unit, direct first, then inherited nearest first."""
    try:
        hierarchy_service.get_unit(unit_id, g.tenant_id)
        roles = hierarchy_service.get_effective_roles(unit_id)
        return jsonify({"roles": [r.to_dict() for r in roles]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@organizations_bp.post("/units/<int:unit_id>/roles")
@require_auth
@require_admin
def assign_roles_route(unit_id: int):
    """
    Request body:
    {
        "role_ids": [3, 4],
        "replace_existing": false,
        "propagate_to_descendants": false
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "role_ids")
        role_ids = data["role_ids"]
        if not isinstance(role_ids, list):
            return jsonify({"error": "role_ids must be a list", "code": "VALIDATION_ERROR"}), 400

        hierarchy_service.get_unit(unit_id, g.tenant_id)
        result = hierarchy_service.assign_role(
            unit_id,
            [coerce_int(r, "role_ids") for r in role_ids],
            replace_existing=coerce_bool(data.get("replace_existing", False), "replace_existing"),
            propagate_to_descendants=coerce_bool(
                data.get("propagate_to_descendants", False), "propagate_to_descendants"
            ),
            actor_user_id=g.current_account.id,
        )
        return jsonify({"result": result.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to assign roles")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.delete("/units/<int:unit_id>/roles/<int:role_id>")
@require_auth
@require_admin
def unassign_role_route(unit_id: int, role_id: int):
    try:
        hierarchy_service.get_unit(unit_id, g.tenant_id)
        result = hierarchy_service.unassign_role(unit_id, role_id)
        return jsonify({"result": result.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to unassign role")
        return jsonify({"error": "Internal server error"}), 500


# -- People --

@organizations_bp.get("/people")
@require_auth
def list_people_route():
    people = membership_service.list_people(g.tenant_id)
    return jsonify({"people": [p.to_dict() for p in people]}), 200


@organizations_bp.post("/people")
@require_auth
@require_admin
def create_person_route():
    try:
        data = require_fields(request.get_json(silent=True), "name")
        person = membership_service.create_person(
            g.tenant_id,
            data["name"],
            email=data.get("email"),
            phone=data.get("phone"),
        )
        return jsonify({"person": person.to_dict()}), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create person")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.patch("/people/<int:person_id>")
@require_auth
@require_admin
def update_person_route(person_id: int):
    try:
        data = request.get_json(silent=True) or {}
        membership_service.get_person(person_id, g.tenant_id)
        person = membership_service.update_person(
            person_id,
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
        )
        return jsonify({"person": person.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update person")
        return jsonify({"error": "Internal server error"}), 500


@organizations_bp.get("/people/<int:person_id>/memberships")
@require_auth
def person_memberships_route(person_id: int):
    try:
        membership_service.get_person(person_id, g.tenant_id)
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        memberships = membership_service.list_person_memberships(person_id, include_inactive=include_inactive)
        return jsonify({"memberships": [m.to_dict() for m in memberships]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
