# Overview: Flask API routes for expense reports (spending requests).

"""
Expense Report Routes

Lifecycle: DRAFT -> (submit) -> IN_PROGRESS -> APPROVED / REJECTED
           DRAFT | SUBMITTED -> (cancel) -> CANCELLED
           APPROVED -> (pay) -> business status PAID

Every report in a response carries both workflow_status (stored) and
business_status (computed).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import FundflowError
from ..services import approval_service, expense_service
from ..validation import coerce_int

expense_reports_bp = Blueprint("expense_reports", __name__, url_prefix="/api/expense-reports")


@expense_reports_bp.get("")
@require_auth
def list_reports_route():
    """Filters: ?mine=true&unit_id=&workflow_status=&business_status="""
    try:
        unit_id = request.args.get("unit_id")
        mine = request.args.get("mine", "false").lower() == "true"
        reports = expense_service.list_reports(
            g.tenant_id,
            requester_id=g.current_account.id if mine else None,
            unit_id=coerce_int(unit_id, "unit_id") if unit_id else None,
            workflow_status=request.args.get("workflow_status"),
            business_status=request.args.get("business_status"),
        )
        return jsonify({"reports": [expense_service.report_to_dict(r) for r in reports]}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@expense_reports_bp.post("")
@require_auth
def create_report_route():
    """
    Create a DRAFT report owned by the caller.

    Request body:
    {
        "title": "여름수련회 장소 예약",
        "organization_unit_id": 4,
        "amount": 300000,                // whole won
        "category": "EVENT",             // optional, default OTHER
        "description": "..."             // optional
    }
    """
    try:
        report = expense_service.create_draft(
            g.tenant_id,
            g.current_account.id,
            request.get_json(silent=True),
        )
        return jsonify({"report": expense_service.report_to_dict(report)}), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create expense report")
        return jsonify({"error": "Internal server error"}), 500


@expense_reports_bp.get("/<int:report_id>")
@require_auth
def get_report_route(report_id: int):
    try:
        report = expense_service.get_report(report_id, g.tenant_id)
        data = expense_service.report_to_dict(report)
        flow = approval_service.get_flow_for_report(report.id)
        data["flow"] = approval_service.get_flow_status(flow.id) if flow else None
        return jsonify({"report": data}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status


@expense_reports_bp.patch("/<int:report_id>")
@require_auth
def update_report_route(report_id: int):
    try:
        expense_service.get_report(report_id, g.tenant_id)
        report = expense_service.update_draft(report_id, g.current_account.id, request.get_json(silent=True))
        return jsonify({"report": expense_service.report_to_dict(report)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update expense report")
        return jsonify({"error": "Internal server error"}), 500


@expense_reports_bp.post("/<int:report_id>/submit")
@require_auth
def submit_report_route(report_id: int):
    """
    Build the approval chain and start step 1.

    422 UNRESOLVABLE_APPROVER when a required tier has nobody to approve it;
    the report stays DRAFT.
    """
    try:
        expense_service.get_report(report_id, g.tenant_id)
        flow = approval_service.submit_for_approval(report_id, g.current_account.id)
        return jsonify({"flow": approval_service.get_flow_status(flow.id)}), 201
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to submit expense report")
        return jsonify({"error": "Internal server error"}), 500


@expense_reports_bp.post("/<int:report_id>/cancel")
@require_auth
def cancel_report_route(report_id: int):
    try:
        expense_service.get_report(report_id, g.tenant_id)
        report = expense_service.cancel_report(report_id, g.current_account.id)
        return jsonify({"report": expense_service.report_to_dict(report)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to cancel expense report")
        return jsonify({"error": "Internal server error"}), 500


@expense_reports_bp.post("/<int:report_id>/pay")
@require_auth
def pay_report_route(report_id: int):
    try:
        report = expense_service.mark_paid(report_id, g.current_account.id, g.tenant_id)
        return jsonify({"report": expense_service.report_to_dict(report)}), 200
    except FundflowError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
