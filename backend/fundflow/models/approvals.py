from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from fundflow.time_utils import to_utc_z


class ExpenseReport(db.Model):
    """
    Spending request (지출결의서) raised by an account holder for a unit.

    LIFECYCLE (workflow_status):
    1. DRAFT: editable by the requester
    2. SUBMITTED: approval flow built, first step not yet active
    3. IN_PROGRESS: flow is walking its steps
    4. APPROVED: every step approved; paid_at is stamped on payment
    5. REJECTED: a step was rejected
    6. CANCELLED: withdrawn by the requester before approval started

    business_status is never stored; see expense_service.project_business_status.
    """
    __tablename__ = "expense_reports"
    __table_args__ = (
        db.Index("ix_expense_reports_tenant_status", "tenant_id", "workflow_status"),
        db.Index("ix_expense_reports_requester", "requester_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    organization_unit_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Whole won; no fractional currency
    amount = db.Column(db.BigInteger, nullable=False)
    category = db.Column(db.String(32), nullable=False, default="OTHER")

    workflow_status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    requester = db.relationship("UserAccount", foreign_keys=[requester_id], backref=db.backref("expense_reports", lazy=True))
    unit = db.relationship("OrganizationUnit", backref=db.backref("expense_reports", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "requester_id": self.requester_id,
            "requester_name": self.requester.name if self.requester else None,
            "organization_unit_id": self.organization_unit_id,
            "organization_unit_name": self.unit.name if self.unit else None,
            "title": self.title,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "workflow_status": self.workflow_status,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at) if self.submitted_at else None,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
        }


class ApprovalFlow(db.Model):
    """
    The approval chain built for one expense report.

    DESIGN:
    - One flow per report (subject_request_id is unique)
    - Steps are snapshotted at submission; later role edits never reshape them
    - current_step_index is 1-based and always <= total_steps
    - version_id makes every flow update a compare-and-swap
    """
    __tablename__ = "approval_flows"
    __table_args__ = (
        db.UniqueConstraint("subject_request_id", name="uq_approval_flows_subject"),
        db.Index("ix_approval_flows_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    subject_request_id = db.Column(db.Integer, db.ForeignKey("expense_reports.id"), nullable=False)
    origin_unit_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=False, index=True)
    requester_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)

    amount = db.Column(db.BigInteger, nullable=False)
    category = db.Column(db.String(32), nullable=False)

    total_steps = db.Column(db.Integer, nullable=False)
    current_step_index = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, IN_PROGRESS, APPROVED, REJECTED

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    report = db.relationship("ExpenseReport", backref=db.backref("approval_flow", uselist=False, lazy=True))
    steps = db.relationship(
        "ApprovalStep",
        backref="flow",
        lazy=True,
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in ("APPROVED", "REJECTED")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "subject_request_id": self.subject_request_id,
            "origin_unit_id": self.origin_unit_id,
            "requester_user_id": self.requester_user_id,
            "amount": self.amount,
            "category": self.category,
            "total_steps": self.total_steps,
            "current_step_index": self.current_step_index,
            "status": self.status,
            "version": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class ApprovalStep(db.Model):
    """
    One approver's decision point within a flow.

    required_authority_tier and approver_role_name are copied at creation.
    """
    __tablename__ = "approval_steps"
    __table_args__ = (
        db.UniqueConstraint("flow_id", "step_order", name="uq_approval_steps_flow_order"),
        db.Index("ix_approval_steps_approver_status", "resolved_approver_user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    flow_id = db.Column(db.Integer, db.ForeignKey("approval_flows.id"), nullable=False, index=True)
    step_order = db.Column(db.Integer, nullable=False)

    required_authority_tier = db.Column(db.Integer, nullable=False)
    resolved_approver_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False)
    resolved_organization_unit_id = db.Column(db.Integer, db.ForeignKey("organization_units.id"), nullable=False)
    approver_role_name = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED
    comments = db.Column(db.Text, nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    approver = db.relationship("UserAccount", foreign_keys=[resolved_approver_user_id])
    unit = db.relationship("OrganizationUnit", foreign_keys=[resolved_organization_unit_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "flow_id": self.flow_id,
            "step_order": self.step_order,
            "required_authority_tier": self.required_authority_tier,
            "resolved_approver_user_id": self.resolved_approver_user_id,
            "approver_name": self.approver.name if self.approver else None,
            "resolved_organization_unit_id": self.resolved_organization_unit_id,
            "organization_unit_name": self.unit.name if self.unit else None,
            "approver_role_name": self.approver_role_name,
            "status": self.status,
            "comments": self.comments,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
        }


class ApprovalAudit(db.Model):
    """
    Immutable trail of flow transitions (SUBMIT, APPROVE, REJECT).

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "approval_audit"
    __table_args__ = (
        db.Index("ix_approval_audit_flow", "flow_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    flow_id = db.Column(db.Integer, db.ForeignKey("approval_flows.id"), nullable=False, index=True)
    step_order = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("user_accounts.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    actor = db.relationship("UserAccount", foreign_keys=[actor_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "flow_id": self.flow_id,
            "step_order": self.step_order,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor.name if self.actor else None,
            "action": self.action,
            "comment": self.comment,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(ApprovalAudit, "before_update")
def _block_audit_update(mapper, connection, target) -> None:
    raise RuntimeError("approval_audit rows are append-only")


@event.listens_for(ApprovalAudit, "before_delete")
def _block_audit_delete(mapper, connection, target) -> None:
    raise RuntimeError("approval_audit rows are append-only")
