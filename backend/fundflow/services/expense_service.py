# Overview: Service-layer operations for expense reports (spending requests).

"""
Expense reports carry two statuses:
- workflow_status: stored, moved by this module and the approval engine
- business_status: never stored, always computed by project_business_status

Amounts are whole won. Drafts are editable only by their requester.
"""

from __future__ import annotations

import logging

from ..authority import AuthorityTier, SystemRole
from ..errors import AuthorityError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import ApprovalFlow, ExpenseReport, UserAccount
from ..validation import ModelValidationPolicy, enforce_rules_expense_report, validate_payload
from fundflow.time_utils import utcnow
from .concurrency import commit_versioned, lock_for_update
from .hierarchy_service import get_unit

logger = logging.getLogger(__name__)


EXPENSE_REPORT_POLICY = ModelValidationPolicy(
    writable_fields={"title", "description", "amount", "category", "organization_unit_id"},
    required_on_create={"title", "amount", "organization_unit_id"},
)

WORKFLOW_STATUSES = ("DRAFT", "SUBMITTED", "IN_PROGRESS", "APPROVED", "REJECTED", "CANCELLED")
BUSINESS_STATUSES = ("PENDING", "DEPARTMENT_APPROVED", "APPROVED", "REJECTED", "PAID")
CANCELLABLE_STATUSES = ("DRAFT", "SUBMITTED")


def project_business_status(report: ExpenseReport, flow: ApprovalFlow | None) -> str:
    """
    The single mapping from workflow state to business status.

    DRAFT, SUBMITTED            -> PENDING
    IN_PROGRESS                 -> DEPARTMENT_APPROVED once a senior-or-higher
                                   step is approved, else PENDING
    APPROVED                    -> PAID if paid_at is set, else APPROVED
    REJECTED, CANCELLED         -> REJECTED
    """
    status = report.workflow_status

    if status in ("REJECTED", "CANCELLED"):
        return "REJECTED"

    if status == "APPROVED":
        return "PAID" if report.paid_at is not None else "APPROVED"

    if status == "IN_PROGRESS" and flow is not None:
        if any(
            step.status == "APPROVED" and step.required_authority_tier >= AuthorityTier.SENIOR
            for step in flow.steps
        ):
            return "DEPARTMENT_APPROVED"

    return "PENDING"


def _flow_for(report_id: int) -> ApprovalFlow | None:
    return db.session.query(ApprovalFlow).filter_by(subject_request_id=report_id).first()


def report_to_dict(report: ExpenseReport) -> dict:
    data = report.to_dict()
    data["business_status"] = project_business_status(report, _flow_for(report.id))
    return data


def get_report(report_id: int, tenant_id: int | None = None) -> ExpenseReport:
    report = db.session.get(ExpenseReport, report_id)
    if report is None or (tenant_id is not None and report.tenant_id != tenant_id):
        raise NotFoundError("Expense report not found")
    return report


def list_reports(
    tenant_id: int,
    *,
    requester_id: int | None = None,
    unit_id: int | None = None,
    workflow_status: str | None = None,
    business_status: str | None = None,
) -> list[ExpenseReport]:
    query = db.session.query(ExpenseReport).filter(ExpenseReport.tenant_id == tenant_id)
    if requester_id is not None:
        query = query.filter(ExpenseReport.requester_id == requester_id)
    if unit_id is not None:
        query = query.filter(ExpenseReport.organization_unit_id == unit_id)
    if workflow_status:
        query = query.filter(ExpenseReport.workflow_status == workflow_status.upper())

    reports = query.order_by(ExpenseReport.id.desc()).all()

    if business_status:
        wanted = business_status.upper()
        reports = [r for r in reports if project_business_status(r, _flow_for(r.id)) == wanted]
    return reports


def create_draft(tenant_id: int, requester_id: int, payload: dict) -> ExpenseReport:
    patch = validate_payload(model=ExpenseReport, payload=payload, policy=EXPENSE_REPORT_POLICY, partial=False)
    enforce_rules_expense_report(patch)

    requester = db.session.get(UserAccount, requester_id)
    if requester is None or requester.tenant_id != tenant_id:
        raise NotFoundError("Requester not found")
    get_unit(patch["organization_unit_id"], tenant_id)

    report = ExpenseReport(
        tenant_id=tenant_id,
        requester_id=requester_id,
        workflow_status="DRAFT",
        **patch,
    )
    db.session.add(report)
    db.session.commit()

    logger.info("Expense report drafted", extra={"report_id": report.id, "requester_id": requester_id})
    return report


def _load_own(report_id: int, actor_user_id: int) -> ExpenseReport:
    report = lock_for_update(db.session.query(ExpenseReport).filter_by(id=report_id)).first()
    if report is None or report.requester_id != actor_user_id:
        raise NotFoundError("Expense report not found")
    return report


def update_draft(report_id: int, actor_user_id: int, payload: dict) -> ExpenseReport:
    report = _load_own(report_id, actor_user_id)
    if report.workflow_status != "DRAFT":
        raise InvalidStateError("Only DRAFT reports can be edited")

    patch = validate_payload(model=ExpenseReport, payload=payload, policy=EXPENSE_REPORT_POLICY, partial=True)
    enforce_rules_expense_report(patch)
    if "organization_unit_id" in patch:
        get_unit(patch["organization_unit_id"], report.tenant_id)

    for key, value in patch.items():
        setattr(report, key, value)

    commit_versioned("Report was changed by another request; reload and retry")
    return report


def cancel_report(report_id: int, actor_user_id: int) -> ExpenseReport:
    report = _load_own(report_id, actor_user_id)
    if report.workflow_status not in CANCELLABLE_STATUSES:
        raise InvalidStateError(f"A {report.workflow_status} report cannot be cancelled")

    report.workflow_status = "CANCELLED"
    report.cancelled_at = utcnow()
    commit_versioned("Report was changed by another request; reload and retry")

    logger.info("Expense report cancelled", extra={"report_id": report.id})
    return report


def mark_paid(report_id: int, actor_user_id: int, tenant_id: int | None = None) -> ExpenseReport:
    actor = db.session.get(UserAccount, actor_user_id)
    if actor is None or actor.system_role not in SystemRole.PAYMENT_ROLES:
        raise AuthorityError("Only finance staff or approvers may record payment")

    report = lock_for_update(db.session.query(ExpenseReport).filter_by(id=report_id)).first()
    if report is None or (tenant_id is not None and report.tenant_id != tenant_id):
        raise NotFoundError("Expense report not found")
    if report.workflow_status != "APPROVED":
        raise InvalidStateError("Only APPROVED reports can be paid")
    if report.paid_at is not None:
        raise InvalidStateError("Report is already paid")

    report.paid_at = utcnow()
    report.paid_by_user_id = actor.id
    commit_versioned("Report was changed by another request; reload and retry")

    logger.info("Expense report paid", extra={"report_id": report.id, "paid_by_user_id": actor.id})
    return report
