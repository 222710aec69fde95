# Overview: Service-layer operations for approval flows; builds and walks the approval chain.

"""
Approval Flow Engine

STATE MACHINE (ApprovalFlow.status):
    PENDING -> IN_PROGRESS -> APPROVED
                           -> REJECTED
APPROVED and REJECTED are absorbing.

Flow construction walks from the request's unit toward the root. For each
required tier the nearest unit with a qualified approver wins, where a
qualified approver is an active membership whose role is available at that
unit, maps to the tier, and belongs to a person with an active account.
Among several candidates in one unit the highest role level wins.

Step processing is serialized per flow: only the step at
current_step_index may act, and the flow row is updated with a version
check. The loser of a race gets StaleStepError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func, or_

from ..authority import AuthorityTier, resolve_authority
from ..errors import (
    ApproverMismatchError,
    FlowAlreadyTerminalError,
    InvalidStateError,
    MissingRejectionReasonError,
    NotFoundError,
    OriginationNotAllowedError,
    StaleStepError,
    UnresolvableApproverError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    ApprovalAudit,
    ApprovalFlow,
    ApprovalStep,
    ExpenseReport,
    Membership,
    OrganizationRole,
    OrganizationUnit,
    Person,
    UserAccount,
)
from fundflow.time_utils import utcnow
from .approval_policy import required_tiers
from .concurrency import lock_for_update, versioned_write
from .expense_service import get_report, project_business_status
from .hierarchy_service import get_ancestors, get_effective_roles, get_unit
from .notification_service import (
    TEMPLATE_APPROVAL_REQUESTED,
    TEMPLATE_REQUEST_APPROVED,
    TEMPLATE_REQUEST_REJECTED,
    notify,
)

logger = logging.getLogger(__name__)


ACTION_SUBMIT = "SUBMIT"
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"
VALID_STEP_ACTIONS = {ACTION_APPROVE, ACTION_REJECT}

FLOW_PENDING = "PENDING"
FLOW_IN_PROGRESS = "IN_PROGRESS"
FLOW_APPROVED = "APPROVED"
FLOW_REJECTED = "REJECTED"


@dataclass(frozen=True)
class ResolvedApprover:
    account: UserAccount
    person: Person
    unit: OrganizationUnit
    role: OrganizationRole

    def to_dict(self) -> dict:
        return {
            "user_id": self.account.id,
            "name": self.person.name,
            "email": self.account.email,
            "role_name": self.role.name,
            "role_level": self.role.level,
            "organization_unit_id": self.unit.id,
            "organization_unit_name": self.unit.name,
        }


@dataclass
class StepPlan:
    step_order: int
    tier: int
    approver: ResolvedApprover | None

    def to_dict(self) -> dict:
        data = {
            "step_order": self.step_order,
            "required_authority_tier": self.tier,
            "resolved": self.approver is not None,
            "approver_user_id": None,
            "approver_name": None,
            "approver_role_name": None,
            "organization_unit_id": None,
            "organization_unit_name": None,
        }
        if self.approver is not None:
            data.update(
                {
                    "approver_user_id": self.approver.account.id,
                    "approver_name": self.approver.account.name,
                    "approver_role_name": self.approver.role.name,
                    "organization_unit_id": self.approver.unit.id,
                    "organization_unit_name": self.approver.unit.name,
                }
            )
        return data


@dataclass
class FlowPreview:
    steps: list[StepPlan]
    warnings: list[str] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def is_submittable(self) -> bool:
        return all(step.approver is not None for step in self.steps)

    def to_dict(self) -> dict:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "total_steps": self.total_steps,
            "is_submittable": self.is_submittable,
            "warnings": self.warnings,
        }


# -- Approver resolution --

def _account_for(person: Person) -> UserAccount | None:
    filters = [UserAccount.person_id == person.id]
    if person.email:
        filters.append(UserAccount.email == person.email)
    return (
        db.session.query(UserAccount)
        .filter(or_(*filters), UserAccount.is_active.is_(True))
        .order_by(UserAccount.id.asc())
        .first()
    )


def _candidates_in_unit(unit: OrganizationUnit, tier: int) -> list[ResolvedApprover]:
    available = {er.role.id for er in get_effective_roles(unit.id)}
    if not available:
        return []

    rows = (
        db.session.query(Membership, OrganizationRole, Person)
        .join(OrganizationRole, OrganizationRole.id == Membership.role_id)
        .join(Person, Person.id == Membership.person_id)
        .filter(
            Membership.unit_id == unit.id,
            Membership.is_active.is_(True),
            Membership.role_id.in_(available),
            OrganizationRole.is_active.is_(True),
            Person.is_active.is_(True),
        )
        .order_by(OrganizationRole.level.desc(), Membership.id.asc())
        .all()
    )

    result = []
    for _membership, role, person in rows:
        if resolve_authority(role.name).authority_tier != tier:
            continue
        account = _account_for(person)
        if account is None:
            continue
        result.append(ResolvedApprover(account=account, person=person, unit=unit, role=role))
    return result


def resolve_approver(unit_id: int, tier: int) -> ResolvedApprover | None:
    """Nearest qualified approver for a tier, at or above the unit."""
    for unit in get_ancestors(unit_id, include_self=True):
        candidates = _candidates_in_unit(unit, tier)
        if candidates:
            return candidates[0]
    return None


def list_unit_approvers(unit_id: int, tier: int | None = None, *, tenant_id: int | None = None) -> list[dict]:
    """
    Approvers for a unit, one entry per tier.

    candidates are the qualified members of the unit itself, best first.
    resolved is who a request from this unit would be routed to, which may
    be someone in an ancestor unit.
    """
    unit = get_unit(unit_id, tenant_id)
    if tier is None:
        tiers = AuthorityTier.APPROVING
    elif tier in AuthorityTier.APPROVING:
        tiers = (tier,)
    else:
        raise ValidationError(f"tier must be one of {list(AuthorityTier.APPROVING)}")

    result = []
    for t in tiers:
        resolved = resolve_approver(unit.id, t)
        result.append({
            "tier": t,
            "candidates": [c.to_dict() for c in _candidates_in_unit(unit, t)],
            "resolved": resolved.to_dict() if resolved is not None else None,
        })
    return result


def _plan(unit_id: int, amount: int, category: str) -> list[StepPlan]:
    plans = []
    for order, tier in enumerate(required_tiers(amount, category), start=1):
        plans.append(StepPlan(step_order=order, tier=tier, approver=resolve_approver(unit_id, tier)))
    return plans


def preview_flow(unit_id: int, amount: int, category: str, *, requester_id: int | None = None) -> FlowPreview:
    """Build the step list without persisting anything."""
    get_unit(unit_id)
    preview = FlowPreview(steps=_plan(unit_id, amount, category))

    seen: dict[int, int] = {}
    for step in preview.steps:
        if step.approver is None:
            preview.warnings.append(f"no qualified approver found for tier {step.tier}")
            continue
        account_id = step.approver.account.id
        if account_id in seen:
            preview.warnings.append(
                f"{step.approver.account.name} approves both step {seen[account_id]} and step {step.step_order}"
            )
        else:
            seen[account_id] = step.step_order
        if requester_id is not None and account_id == requester_id:
            preview.warnings.append(f"requester is the approver of step {step.step_order}")

    return preview


# -- Submission --

def can_originate(account: UserAccount) -> bool:
    """True if the account's person holds an active role that may originate requests."""
    if account.person_id is None:
        return False
    names = (
        db.session.query(OrganizationRole.name)
        .join(Membership, Membership.role_id == OrganizationRole.id)
        .filter(Membership.person_id == account.person_id, Membership.is_active.is_(True))
        .all()
    )
    return any(resolve_authority(name).can_originate_request for (name,) in names)


def _audit(flow: ApprovalFlow, action: str, actor_user_id: int, *, step_order: int | None = None, comment: str | None = None) -> None:
    db.session.add(
        ApprovalAudit(
            flow_id=flow.id,
            step_order=step_order,
            actor_user_id=actor_user_id,
            action=action,
            comment=comment,
            occurred_at=utcnow(),
        )
    )


def _notify_approver(flow: ApprovalFlow, step: ApprovalStep, report: ExpenseReport) -> None:
    approver = db.session.get(UserAccount, step.resolved_approver_user_id)
    notify(
        approver.person_id if approver else None,
        TEMPLATE_APPROVAL_REQUESTED,
        {
            "flow_id": flow.id,
            "report_id": report.id,
            "title": report.title,
            "amount": report.amount,
            "step_order": step.step_order,
            "total_steps": flow.total_steps,
        },
        account_id=step.resolved_approver_user_id,
    )


def _notify_requester(flow: ApprovalFlow, report: ExpenseReport, template: str, comment: str | None = None) -> None:
    requester = db.session.get(UserAccount, report.requester_id)
    notify(
        requester.person_id if requester else None,
        template,
        {
            "flow_id": flow.id,
            "report_id": report.id,
            "title": report.title,
            "amount": report.amount,
            "comment": comment,
        },
        account_id=report.requester_id,
    )


def submit_for_approval(report_id: int, actor_user_id: int) -> ApprovalFlow:
    """
    Build the approval flow for a DRAFT report and activate step 1.

    All-or-nothing: if any tier has no qualified approver nothing is
    written and the report stays DRAFT.
    """
    report = lock_for_update(db.session.query(ExpenseReport).filter_by(id=report_id)).first()
    if report is None:
        raise NotFoundError("Expense report not found")
    if report.requester_id != actor_user_id:
        raise NotFoundError("Expense report not found")
    if report.workflow_status != "DRAFT":
        raise InvalidStateError(f"Only DRAFT reports can be submitted (current: {report.workflow_status})")

    requester = db.session.get(UserAccount, actor_user_id)
    if requester is None or not requester.is_active or not can_originate(requester):
        raise OriginationNotAllowedError()

    if db.session.query(ApprovalFlow).filter_by(subject_request_id=report.id).first() is not None:
        raise InvalidStateError("An approval flow already exists for this report")

    plans = _plan(report.organization_unit_id, report.amount, report.category)
    for plan in plans:
        if plan.approver is None:
            logger.warning(
                "Approval flow construction failed",
                extra={"report_id": report.id, "tier": plan.tier, "unit_id": report.organization_unit_id},
            )
            raise UnresolvableApproverError(plan.tier, report.organization_unit_id)

    with versioned_write("Report was changed by another request; reload and retry"):
        flow = _persist_flow(report, plans, actor_user_id)
        db.session.commit()

    logger.info(
        "Approval flow created",
        extra={"flow_id": flow.id, "report_id": report.id, "total_steps": flow.total_steps},
    )
    return flow


def _persist_flow(report: ExpenseReport, plans: list[StepPlan], actor_user_id: int) -> ApprovalFlow:
    now = utcnow()
    report.workflow_status = "SUBMITTED"
    report.submitted_at = now

    flow = ApprovalFlow(
        tenant_id=report.tenant_id,
        subject_request_id=report.id,
        origin_unit_id=report.organization_unit_id,
        requester_user_id=report.requester_id,
        amount=report.amount,
        category=report.category,
        total_steps=len(plans),
        current_step_index=1,
        status=FLOW_PENDING,
    )
    db.session.add(flow)
    db.session.flush()

    for plan in plans:
        db.session.add(
            ApprovalStep(
                flow_id=flow.id,
                step_order=plan.step_order,
                required_authority_tier=plan.tier,
                resolved_approver_user_id=plan.approver.account.id,
                resolved_organization_unit_id=plan.approver.unit.id,
                approver_role_name=plan.approver.role.name,
                status="PENDING",
            )
        )

    _audit(flow, ACTION_SUBMIT, actor_user_id)

    # Activate step 1
    flow.status = FLOW_IN_PROGRESS
    report.workflow_status = "IN_PROGRESS"
    db.session.flush()

    first = db.session.query(ApprovalStep).filter_by(flow_id=flow.id, step_order=1).one()
    _notify_approver(flow, first, report)
    return flow


# -- Step processing --

def process_approval_step(
    flow_id: int,
    step_order: int,
    action: str,
    comments: str | None,
    actor_user_id: int,
    *,
    expected_version: int | None = None,
) -> ApprovalStep:
    """
    APPROVE or REJECT the current step.

    Checks, in order: flow exists, flow not terminal, action valid, step is
    current (and expected_version matches when given), actor is the step's
    approver, REJECT carries a comment.
    """
    flow = lock_for_update(db.session.query(ApprovalFlow).filter_by(id=flow_id)).populate_existing().first()
    if flow is None:
        raise NotFoundError("Approval flow not found")

    if flow.is_terminal:
        raise FlowAlreadyTerminalError(f"Approval flow is already {flow.status}")

    action = (action or "").strip().upper()
    if action not in VALID_STEP_ACTIONS:
        raise ValidationError("action must be APPROVE or REJECT")

    if step_order != flow.current_step_index:
        raise StaleStepError(
            f"Step {step_order} is not the current step (current: {flow.current_step_index})"
        )
    if expected_version is not None and expected_version != flow.version_id:
        raise StaleStepError("Approval flow was changed by another request; reload and retry")

    step = db.session.query(ApprovalStep).filter_by(flow_id=flow.id, step_order=step_order).one()
    if step.resolved_approver_user_id != actor_user_id:
        raise ApproverMismatchError()

    comments = (comments or "").strip() or None
    if action == ACTION_REJECT and not comments:
        raise MissingRejectionReasonError()

    report = db.session.get(ExpenseReport, flow.subject_request_id)

    with versioned_write(
        "Approval flow was changed by another request; reload and retry",
        error_cls=StaleStepError,
    ):
        _apply_decision(flow, step, report, action, comments, actor_user_id)
        db.session.commit()

    logger.info(
        "Approval step processed",
        extra={
            "flow_id": flow.id,
            "step_order": step_order,
            "action": action,
            "actor_user_id": actor_user_id,
            "flow_status": flow.status,
        },
    )
    return step


def _apply_decision(
    flow: ApprovalFlow,
    step: ApprovalStep,
    report: ExpenseReport,
    action: str,
    comments: str | None,
    actor_user_id: int,
) -> None:
    step_order = step.step_order
    now = utcnow()

    step.status = "APPROVED" if action == ACTION_APPROVE else "REJECTED"
    step.comments = comments
    step.processed_at = now

    if action == ACTION_REJECT:
        flow.status = FLOW_REJECTED
        flow.completed_at = now
        report.workflow_status = "REJECTED"
        report.rejected_at = now
        report.rejection_reason = comments
    elif step_order == flow.total_steps:
        flow.status = FLOW_APPROVED
        flow.completed_at = now
        report.workflow_status = "APPROVED"
        report.approved_at = now
    else:
        flow.current_step_index = step_order + 1

    db.session.flush()

    _audit(flow, action, actor_user_id, step_order=step_order, comment=comments)

    if flow.status == FLOW_IN_PROGRESS:
        nxt = db.session.query(ApprovalStep).filter_by(flow_id=flow.id, step_order=flow.current_step_index).one()
        _notify_approver(flow, nxt, report)
    elif flow.status == FLOW_APPROVED:
        _notify_requester(flow, report, TEMPLATE_REQUEST_APPROVED)
    else:
        _notify_requester(flow, report, TEMPLATE_REQUEST_REJECTED, comments)


# -- Read projections --

def get_flow(flow_id: int, tenant_id: int | None = None) -> ApprovalFlow:
    flow = db.session.get(ApprovalFlow, flow_id)
    if flow is None or (tenant_id is not None and flow.tenant_id != tenant_id):
        raise NotFoundError("Approval flow not found")
    return flow


def get_flow_for_report(report_id: int) -> ApprovalFlow | None:
    return db.session.query(ApprovalFlow).filter_by(subject_request_id=report_id).first()


def get_flow_steps(flow_id: int) -> list[ApprovalStep]:
    get_flow(flow_id)
    return (
        db.session.query(ApprovalStep)
        .filter_by(flow_id=flow_id)
        .order_by(ApprovalStep.step_order.asc())
        .all()
    )


def get_flow_audit(flow_id: int) -> list[ApprovalAudit]:
    get_flow(flow_id)
    return (
        db.session.query(ApprovalAudit)
        .filter_by(flow_id=flow_id)
        .order_by(ApprovalAudit.id.asc())
        .all()
    )


def get_flow_status(flow_id: int, tenant_id: int | None = None) -> dict:
    flow = get_flow(flow_id, tenant_id)
    steps = get_flow_steps(flow.id)
    report = get_report(flow.subject_request_id)

    current = None
    if not flow.is_terminal:
        current = next((s for s in steps if s.step_order == flow.current_step_index), None)

    data = flow.to_dict()
    data.update(
        {
            "workflow_status": report.workflow_status,
            "business_status": project_business_status(report, flow),
            "current_step": current.to_dict() if current else None,
            "completed_steps": sum(1 for s in steps if s.status == "APPROVED"),
        }
    )
    return data


def list_pending_for_approver(account_id: int) -> list[ApprovalStep]:
    """Steps currently waiting on this account."""
    return (
        db.session.query(ApprovalStep)
        .join(ApprovalFlow, ApprovalFlow.id == ApprovalStep.flow_id)
        .filter(
            ApprovalStep.resolved_approver_user_id == account_id,
            ApprovalStep.status == "PENDING",
            ApprovalFlow.status == FLOW_IN_PROGRESS,
            ApprovalFlow.current_step_index == ApprovalStep.step_order,
        )
        .order_by(ApprovalFlow.created_at.asc(), ApprovalFlow.id.asc())
        .all()
    )


def list_requests_for_requester(account_id: int) -> list[dict]:
    reports = (
        db.session.query(ExpenseReport)
        .filter_by(requester_id=account_id)
        .order_by(ExpenseReport.id.desc())
        .all()
    )
    result = []
    for report in reports:
        flow = get_flow_for_report(report.id)
        data = report.to_dict()
        data["business_status"] = project_business_status(report, flow)
        data["flow"] = flow.to_dict() if flow else None
        result.append(data)
    return result


def get_approval_stats(tenant_id: int, *, account_id: int | None = None) -> dict:
    """Counts by flow status and by business status, with amount totals."""
    flow_rows = (
        db.session.query(ApprovalFlow.status, func.count(ApprovalFlow.id))
        .filter(ApprovalFlow.tenant_id == tenant_id)
        .group_by(ApprovalFlow.status)
        .all()
    )
    by_flow_status = {FLOW_PENDING: 0, FLOW_IN_PROGRESS: 0, FLOW_APPROVED: 0, FLOW_REJECTED: 0}
    by_flow_status.update({status: count for status, count in flow_rows})

    by_business_status = {"PENDING": 0, "DEPARTMENT_APPROVED": 0, "APPROVED": 0, "REJECTED": 0, "PAID": 0}
    amounts = dict.fromkeys(by_business_status, 0)
    for report in db.session.query(ExpenseReport).filter_by(tenant_id=tenant_id).all():
        status = project_business_status(report, get_flow_for_report(report.id))
        by_business_status[status] += 1
        amounts[status] += report.amount

    stats = {
        "flows": by_flow_status,
        "reports": by_business_status,
        "amounts": amounts,
    }
    if account_id is not None:
        stats["pending_for_me"] = len(list_pending_for_approver(account_id))
    return stats
