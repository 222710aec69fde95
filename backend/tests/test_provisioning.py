# Overview: Pytest coverage for login account provisioning driven by membership events.

from fundflow.authority import SystemRole
from fundflow.extensions import db
from fundflow.models import CredentialNotice, NotificationOutbox, UserAccount
from fundflow.services import approval_service, membership_service
from fundflow.services.credential_service import verify_credential
from fundflow.services.provisioning_service import (
    ACTION_CREATED,
    ACTION_DEACTIVATED,
    ACTION_EXISTING,
    ACTION_MISSING_EMAIL,
    ACTION_REACTIVATED,
    ACTION_RETAINED,
    ACTION_SKIPPED,
    EVENT_GRANT,
    MembershipEvent,
    reconcile,
    reconcile_account,
)

from conftest import account_for, add_member, role_named


class TestGrant:

    def test_qualifying_role_creates_account(self, org):
        person, result = add_member(org.tenant.id, org.team, "정회계", "회계", email="Jung@Hanbit.org", phone="010-1234")

        assert result.provisioning.action == ACTION_CREATED
        account = account_for("jung@hanbit.org")
        assert account is not None
        assert account.person_id == person.id
        assert account.system_role == SystemRole.DEPARTMENT_ACCOUNTANT
        assert account.must_change_credential is True
        assert account.is_active is True
        # One-time credential is the email itself
        assert verify_credential("jung@hanbit.org", account.credential_hash)

    def test_account_creation_writes_notice_and_outbox(self, org):
        add_member(org.tenant.id, org.team, "정회계", "회계", email="jung@hanbit.org", phone="010-1234")
        account = account_for("jung@hanbit.org")

        notice = db.session.query(CredentialNotice).filter_by(account_id=account.id).one()
        assert notice.has_phone is True
        assert notice.role_name == "회계"

        outbox = db.session.query(NotificationOutbox).filter_by(
            account_id=account.id, template="credentials_issued"
        ).one()
        assert outbox.payload["email"] == "jung@hanbit.org"
        # The credential itself never goes into the outbox
        assert "password" not in outbox.payload

    def test_non_qualifying_role_skips(self, org):
        _, result = add_member(org.tenant.id, org.team, "소프라노", None, email="soprano@hanbit.org")
        assert result.provisioning is None
        assert account_for("soprano@hanbit.org") is None

        person = membership_service.create_person(org.tenant.id, "서기님", email="clerk@hanbit.org")
        outcome = reconcile(MembershipEvent(kind=EVENT_GRANT, person_id=person.id, role_name="서기"))
        assert outcome.action == ACTION_SKIPPED
        assert account_for("clerk@hanbit.org") is None

    def test_missing_email_returns_none_without_raising(self, org):
        person, result = add_member(org.tenant.id, org.team, "무메일", "회계")

        assert result.provisioning.action == ACTION_MISSING_EMAIL
        assert result.warnings == ["MISSING_EMAIL"]
        assert result.membership.is_active is True
        assert db.session.query(UserAccount).filter_by(person_id=person.id).count() == 0

        event = MembershipEvent(kind=EVENT_GRANT, person_id=person.id, role_name="회계")
        assert reconcile_account(event) is None

    def test_grant_is_idempotent(self, org):
        person = membership_service.create_person(org.tenant.id, "중복", email="dup@hanbit.org")
        event = MembershipEvent(kind=EVENT_GRANT, person_id=person.id, role_name="부장")

        first = reconcile(event)
        db.session.commit()
        second = reconcile(event)
        db.session.commit()

        assert first.action == ACTION_CREATED
        assert second.action == ACTION_EXISTING
        assert second.account.id == first.account.id
        assert db.session.query(UserAccount).filter_by(email="dup@hanbit.org").count() == 1


class TestChange:

    def test_role_change_updates_system_role_keeps_credential(self, org):
        membership = (
            membership_service.list_person_memberships(org.people.treasurer.id)[0]
        )
        before_hash = org.treasurer.credential_hash

        result = membership_service.change_membership_role(
            membership.id, org.roles["부장"].id, reason="승진"
        )

        account = account_for("treasurer@hanbit.org")
        assert result.provisioning.account.id == account.id
        assert account.system_role == SystemRole.DEPARTMENT_HEAD
        assert account.credential_hash == before_hash
        assert account.is_active is True

    def test_change_to_qualifying_role_creates_missing_account(self, org):
        person, result = add_member(org.tenant.id, org.department, "새회계", None, email="new@hanbit.org")
        assert account_for("new@hanbit.org") is None

        membership_service.change_membership_role(result.membership.id, org.roles["회계"].id)

        assert account_for("new@hanbit.org") is not None


class TestRevoke:

    def test_ending_only_qualifying_membership_deactivates(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]

        result = membership_service.end_membership(membership.id, reason="임기 만료")

        assert result.provisioning.action == ACTION_DEACTIVATED
        account = account_for("head@hanbit.org")
        # Deactivated, never deleted
        assert account is not None
        assert account.is_active is False

    def test_other_qualifying_membership_retains_account(self, org):
        second = membership_service.add_membership(
            org.people.head.id, org.team.id, role_id=role_named(org.tenant.id, "부회계").id
        )
        first = membership_service.list_person_memberships(org.people.head.id)[0]
        assert first.id != second.membership.id

        result = membership_service.end_membership(first.id)

        assert result.provisioning.action == ACTION_RETAINED
        assert account_for("head@hanbit.org").is_active is True

    def test_reactivation_reactivates_account(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        membership_service.end_membership(membership.id)
        assert account_for("head@hanbit.org").is_active is False

        membership_service.reactivate_membership(membership.id, reason="재선임")

        assert account_for("head@hanbit.org").is_active is True

    def test_reappointment_after_revoke_reactivates_account(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        membership_service.end_membership(membership.id, reason="임기 만료")
        account = account_for("head@hanbit.org")
        credential_hash = account.credential_hash
        assert account.is_active is False

        # A new membership, not a reactivation of the old one
        result = membership_service.add_membership(
            org.people.head.id, org.department.id, role_id=role_named(org.tenant.id, "부장").id
        )

        assert result.provisioning.action == ACTION_REACTIVATED
        account = account_for("head@hanbit.org")
        assert account.is_active is True
        assert account.system_role == SystemRole.DEPARTMENT_HEAD
        assert account.credential_hash == credential_hash
        assert db.session.query(UserAccount).filter_by(person_id=org.people.head.id).count() == 1

        approver = approval_service.resolve_approver(org.department.id, 2)
        assert approver is not None
        assert approver.account.id == account.id
