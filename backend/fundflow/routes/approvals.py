# Overview: Flask API routes for approval flows; preview, step processing and read projections.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import FundflowError, ValidationError
from ..services import approval_policy, approval_service, hierarchy_service
from ..validation import coerce_int, require_fields

approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


@approvals_bp.post("/preview")
@require_auth
def preview_route():
    """
    Show the approval chain a request would get, without saving anything.

    Request body:
    {
        "organization_unit_id": 4,
        "amount": 800000,
        "category": "EVENT"      // optional, default OTHER
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "organization_unit_id", "amount")
        unit = hierarchy_service.get_unit(coerce_int(data["organization_unit_id"], "organization_unit_id"), g.tenant_id)
        preview = approval_service.preview_flow(
            unit.id,
            coerce_int(data["amount"], "amount"),
            str(data.get("category") or "OTHER").upper(),
            requester_id=g.current_account.id,
        )
        return jsonify({"preview": preview.to_dict()}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to preview approval flow")
        return jsonify({"error": "Internal server error"}), 500


@approvals_bp.get("/pending")
@require_auth
def pending_route():
    """Steps currently waiting on the caller."""
    steps = approval_service.list_pending_for_approver(g.current_account.id)
    pending = []
    for step in steps:
        data = step.to_dict()
        data["flow"] = approval_service.get_flow_status(step.flow_id)
        pending.append(data)
    return jsonify({"pending": pending}), 200


@approvals_bp.get("/mine")
@require_auth
def my_requests_route():
    return jsonify({"requests": approval_service.list_requests_for_requester(g.current_account.id)}), 200


@approvals_bp.get("/stats")
@require_auth
def stats_route():
    stats = approval_service.get_approval_stats(g.tenant_id, account_id=g.current_account.id)
    return jsonify({"stats": stats}), 200


@approvals_bp.get("/approvers")
@require_auth
def approvers_route():
    """
    Approvers per tier for one unit.

    Query: organization_unit_id (required), tier (optional, 1-3)
    """
    try:
        unit_id = request.args.get("organization_unit_id")
        if unit_id is None:
            raise ValidationError("organization_unit_id is required")
        tier = request.args.get("tier")
        approvers = approval_service.list_unit_approvers(
            coerce_int(unit_id, "organization_unit_id"),
            coerce_int(tier, "tier") if tier is not None else None,
            tenant_id=g.tenant_id,
        )
        return jsonify({"approvers": approvers}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@approvals_bp.get("/matrix")
@require_auth
@require_admin
def matrix_route():
    return jsonify({"matrix": approval_policy.approval_matrix()}), 200


@approvals_bp.get("/<int:flow_id>")
@require_auth
def flow_status_route(flow_id: int):
    try:
        return jsonify({"flow": approval_service.get_flow_status(flow_id, g.tenant_id)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@approvals_bp.get("/<int:flow_id>/steps")
@require_auth
def flow_steps_route(flow_id: int):
    try:
        approval_service.get_flow(flow_id, g.tenant_id)
        steps = approval_service.get_flow_steps(flow_id)
        return jsonify({"steps": [s.to_dict() for s in steps]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@approvals_bp.get("/<int:flow_id>/audit")
@require_auth
def flow_audit_route(flow_id: int):
    try:
        approval_service.get_flow(flow_id, g.tenant_id)
        audit = approval_service.get_flow_audit(flow_id)
        return jsonify({"audit": [a.to_dict() for a in audit]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@approvals_bp.post("/<int:flow_id>/steps/<int:step_order>")
@require_auth
def process_step_route(flow_id: int, step_order: int):
    """
    APPROVE or REJECT the current step.

    Request body:
    {
        "action": "APPROVE",      // or "REJECT"
        "comments": "...",        // required for REJECT
        "version": 3              // optional; flow version the caller last saw
    }

    409 STALE_STEP means someone else moved the flow first; reload and retry.
    """
    try:
        data = require_fields(request.get_json(silent=True), "action")
        version = data.get("version")
        approval_service.get_flow(flow_id, g.tenant_id)
        step = approval_service.process_approval_step(
            flow_id,
            step_order,
            str(data["action"]).upper(),
            data.get("comments"),
            g.current_account.id,
            expected_version=coerce_int(version, "version") if version is not None else None,
        )
        return jsonify({
            "step": step.to_dict(),
            "flow": approval_service.get_flow_status(flow_id),
        }), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to process approval step")
        return jsonify({"error": "Internal server error"}), 500
