# Overview: Pytest coverage for expense report drafting and the business status projection.

import pytest

from fundflow.errors import AuthorityError, InvalidStateError, NotFoundError, ValidationError
from fundflow.extensions import db
from fundflow.services import approval_service, expense_service


def _draft(org, **overrides):
    payload = {
        "title": "성가대 악보 구입",
        "organization_unit_id": org.department.id,
        "amount": 800_000,
        "category": "SUPPLIES",
    }
    payload.update(overrides)
    return expense_service.create_draft(org.tenant.id, org.assistant.id, payload)


def _business(report):
    return expense_service.report_to_dict(report)["business_status"]


def _step(report, order, account, action="APPROVE", comment=None):
    flow = approval_service.get_flow_for_report(report.id)
    approval_service.process_approval_step(flow.id, order, action, comment, account.id)


class TestDrafts:

    def test_create_normalizes_input(self, org):
        report = _draft(org, amount="1,200,000", category="event", title="  수련회  ")
        assert report.amount == 1_200_000
        assert report.category == "EVENT"
        assert report.title == "수련회"
        assert report.workflow_status == "DRAFT"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": 0},
            {"amount": 12.5},
            {"amount": "1e6"},
            {"amount": 100_000_000_000},
            {"category": "LUNCH"},
            {"title": "   "},
            {"status": "APPROVED"},
        ],
    )
    def test_create_rejects_bad_input(self, org, overrides):
        with pytest.raises(ValidationError):
            _draft(org, **overrides)

    def test_missing_required_field(self, org):
        with pytest.raises(ValidationError):
            expense_service.create_draft(org.tenant.id, org.assistant.id, {"title": "no amount"})

    def test_unit_must_belong_to_tenant(self, org):
        from fundflow.services.hierarchy_service import create_tenant, get_root_unit

        other = create_tenant("다른교회", "OTHER")
        with pytest.raises(NotFoundError):
            _draft(org, organization_unit_id=get_root_unit(other.id).id)

    def test_only_requester_edits_draft(self, org):
        report = _draft(org)
        updated = expense_service.update_draft(report.id, org.assistant.id, {"amount": 900_000})
        assert updated.amount == 900_000

        with pytest.raises(NotFoundError):
            expense_service.update_draft(report.id, org.treasurer.id, {"amount": 1})

    def test_submitted_report_is_frozen(self, org):
        report = _draft(org)
        approval_service.submit_for_approval(report.id, org.assistant.id)
        with pytest.raises(InvalidStateError):
            expense_service.update_draft(report.id, org.assistant.id, {"title": "수정"})

    def test_listing_filters(self, org):
        first = _draft(org)
        _draft(org, organization_unit_id=org.team.id)
        approval_service.submit_for_approval(first.id, org.assistant.id)

        assert [r.id for r in expense_service.list_reports(org.tenant.id, unit_id=org.department.id)] == [first.id]
        assert [r.id for r in expense_service.list_reports(org.tenant.id, workflow_status="in_progress")] == [first.id]
        assert len(expense_service.list_reports(org.tenant.id, business_status="PENDING")) == 2
        assert expense_service.list_reports(org.tenant.id, requester_id=org.head.id) == []


class TestCancel:

    def test_cancel_draft(self, org):
        report = expense_service.cancel_report(_draft(org).id, org.assistant.id)
        assert report.workflow_status == "CANCELLED"
        assert report.cancelled_at is not None
        assert _business(report) == "REJECTED"

    def test_in_progress_report_cannot_be_cancelled(self, org):
        report = _draft(org)
        approval_service.submit_for_approval(report.id, org.assistant.id)
        with pytest.raises(InvalidStateError):
            expense_service.cancel_report(report.id, org.assistant.id)

    def test_cancelled_report_cannot_be_submitted(self, org):
        report = expense_service.cancel_report(_draft(org).id, org.assistant.id)
        with pytest.raises(InvalidStateError):
            approval_service.submit_for_approval(report.id, org.assistant.id)


class TestBusinessStatus:

    def test_projection_through_full_chain(self, org):
        report = _draft(org, amount=2_000_000)
        assert _business(report) == "PENDING"

        approval_service.submit_for_approval(report.id, org.assistant.id)
        assert _business(report) == "PENDING"

        _step(report, 1, org.treasurer)
        assert _business(report) == "PENDING"

        _step(report, 2, org.head)
        assert _business(report) == "DEPARTMENT_APPROVED"

        _step(report, 3, org.chair)
        assert _business(report) == "APPROVED"

        expense_service.mark_paid(report.id, org.treasurer.id)
        assert _business(report) == "PAID"

    def test_rejection_projects_rejected(self, org):
        report = _draft(org)
        approval_service.submit_for_approval(report.id, org.assistant.id)
        _step(report, 1, org.treasurer, "REJECT", "영수증 누락")
        assert _business(report) == "REJECTED"

    def test_final_tier_approval_without_senior_step(self, org):
        report = _draft(org, amount=50_000)
        approval_service.submit_for_approval(report.id, org.assistant.id)
        _step(report, 1, org.treasurer)
        # Step 2 is the tier 3 step; the flow is done once it approves
        assert _business(report) == "PENDING"
        _step(report, 2, org.chair)
        assert _business(report) == "APPROVED"


class TestPayment:

    def _approved(self, org):
        report = _draft(org, amount=50_000)
        approval_service.submit_for_approval(report.id, org.assistant.id)
        _step(report, 1, org.treasurer)
        _step(report, 2, org.chair)
        return report

    def test_only_approved_reports_are_paid(self, org):
        report = _draft(org)
        with pytest.raises(InvalidStateError):
            expense_service.mark_paid(report.id, org.treasurer.id)

    def test_payment_recorded_once(self, org):
        report = self._approved(org)
        paid = expense_service.mark_paid(report.id, org.chair.id, tenant_id=org.tenant.id)
        assert paid.paid_by_user_id == org.chair.id
        assert paid.paid_at is not None

        with pytest.raises(InvalidStateError):
            expense_service.mark_paid(report.id, org.treasurer.id)

    def test_general_user_cannot_record_payment(self, org):
        report = self._approved(org)
        org.assistant.system_role = "GENERAL_USER"
        db.session.commit()

        with pytest.raises(AuthorityError):
            expense_service.mark_paid(report.id, org.assistant.id)

    def test_payment_is_tenant_scoped(self, org):
        report = self._approved(org)
        with pytest.raises(NotFoundError):
            expense_service.mark_paid(report.id, org.treasurer.id, tenant_id=org.tenant.id + 1)
