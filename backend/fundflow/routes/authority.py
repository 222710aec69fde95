# Overview: Flask API routes for role-name to authority resolution.

from flask import Blueprint, jsonify, request

from ..authority import all_role_mappings, resolve_authority
from ..decorators import require_auth

authority_bp = Blueprint("authority", __name__, url_prefix="/api/authority")


@authority_bp.get("/resolve")
@require_auth
def resolve_route():
    """Resolve ?role_name=... to its authority profile. Never fails."""
    role_name = request.args.get("role_name")
    return jsonify({"profile": resolve_authority(role_name).to_dict()}), 200


@authority_bp.get("/mappings")
@require_auth
def mappings_route():
    return jsonify({"mappings": [p.to_dict() for p in all_role_mappings()]}), 200
