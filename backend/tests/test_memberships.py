# Overview: Pytest coverage for memberships, their history and invariants.

from datetime import date

import pytest
from sqlalchemy import text

from fundflow.errors import (
    DuplicateMembershipError,
    StaleRecordError,
    StructuralIntegrityError,
    ValidationError,
)
from fundflow.extensions import db
from fundflow.models import MembershipHistory
from fundflow.services import membership_service
from fundflow.services.membership_service import (
    CHANGE_CREATED,
    CHANGE_DEACTIVATED,
    CHANGE_END_DATE,
    CHANGE_NOTES,
    CHANGE_PRIMARY,
    CHANGE_ROLE,
)

from conftest import add_member


def _history_types(membership_id):
    return [h.change_type for h in membership_service.get_membership_history(membership_id)]


class TestAddMembership:

    def test_duplicate_active_membership_rejected(self, org):
        with pytest.raises(DuplicateMembershipError):
            membership_service.add_membership(org.people.head.id, org.department.id)

    def test_role_must_be_available_in_unit(self, org):
        person = membership_service.create_person(org.tenant.id, "선교사", email="m@hanbit.org")
        with pytest.raises(ValidationError):
            membership_service.add_membership(person.id, org.mission.id, role_id=org.roles["회계"].id)

    def test_inherited_role_is_available(self, org):
        _, result = add_member(org.tenant.id, org.team, "팀회계", "회계", email="team@hanbit.org")
        assert result.membership.role_id == org.roles["회계"].id

    def test_single_primary_membership(self, org):
        with pytest.raises(StructuralIntegrityError):
            membership_service.add_membership(org.people.head.id, org.team.id, is_primary=True)

    def test_created_history_row(self, org):
        _, result = add_member(org.tenant.id, org.team, "팀원", "부원")
        history = membership_service.get_membership_history(result.membership.id)
        assert [h.change_type for h in history] == [CHANGE_CREATED]
        assert history[0].new_value == "부원"


class TestMembershipUpdates:

    def test_role_change_records_history(self, org):
        _, result = add_member(org.tenant.id, org.team, "팀원", "부원")
        membership_service.change_membership_role(
            result.membership.id, org.roles["부회계"].id, reason="임명"
        )
        history = membership_service.get_membership_history(result.membership.id)
        assert history[-1].change_type == CHANGE_ROLE
        assert history[-1].previous_value == "부원"
        assert history[-1].new_value == "부회계"
        assert history[-1].reason == "임명"

    def test_primary_switch_requires_releasing_old(self, org):
        _, result = add_member(org.tenant.id, org.team, "팀원", None, email=None)
        person_id = result.membership.person_id
        membership_service.set_primary(result.membership.id, True)

        second = membership_service.add_membership(person_id, org.mission.id)
        with pytest.raises(StructuralIntegrityError):
            membership_service.set_primary(second.membership.id, True)

        membership_service.set_primary(result.membership.id, False)
        membership_service.set_primary(second.membership.id, True)
        assert _history_types(second.membership.id) == [CHANGE_CREATED, CHANGE_PRIMARY]

    def test_notes_history(self, org):
        _, result = add_member(org.tenant.id, org.team, "팀원", None)
        membership_service.update_notes(result.membership.id, "베이스 담당")
        assert _history_types(result.membership.id) == [CHANGE_CREATED, CHANGE_NOTES]

    def test_end_membership_writes_history_and_clears_primary(self, org):
        membership = membership_service.list_person_memberships(org.people.assistant.id)[0]

        membership_service.end_membership(membership.id, end_date=date.today(), reason="이사")

        db.session.refresh(membership)
        assert membership.is_active is False
        assert membership.is_primary is False
        types = _history_types(membership.id)
        assert types[-3:] == [CHANGE_END_DATE, CHANGE_DEACTIVATED, CHANGE_PRIMARY]

    def test_end_date_before_join_rejected(self, org):
        membership = membership_service.list_person_memberships(org.people.assistant.id)[0]
        with pytest.raises(ValidationError):
            membership_service.end_membership(membership.id, end_date=date(2000, 1, 1))

    def test_setting_end_date_ends_membership(self, org):
        membership = membership_service.list_person_memberships(org.people.assistant.id)[0]
        membership_service.update_membership_dates(membership.id, end_date=date.today())
        db.session.refresh(membership)
        assert membership.is_active is False

    def test_ended_membership_stays_listed_as_inactive(self, org):
        membership = membership_service.list_person_memberships(org.people.assistant.id)[0]
        membership_service.end_membership(membership.id)

        active = membership_service.list_unit_memberships(org.department.id)
        everyone = membership_service.list_unit_memberships(org.department.id, include_inactive=True)
        assert membership.id not in [m.id for m in active]
        assert membership.id in [m.id for m in everyone]

    def test_unit_listing_orders_by_role_level(self, org):
        names = [m.person.name for m in membership_service.list_unit_memberships(org.department.id)]
        assert names == ["이부장", "박회계", "최부회계"]


class TestHistoryIsAppendOnly:

    def test_history_update_raises(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        row = db.session.query(MembershipHistory).filter_by(membership_id=membership.id).first()
        row.reason = "tampered"
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()

    def test_history_delete_raises(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        row = db.session.query(MembershipHistory).filter_by(membership_id=membership.id).first()
        db.session.delete(row)
        with pytest.raises(RuntimeError):
            db.session.flush()
        db.session.rollback()


class TestVersioning:

    def test_concurrent_membership_write_is_stale(self, org, monkeypatch):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        membership_id = membership.id
        real_today = membership_service.utc_today

        def _competing_write():
            # Another request edits the membership after this one has read it
            db.session.execute(
                text("UPDATE memberships SET version_id = version_id + 1, notes = 'elsewhere' WHERE id = :id"),
                {"id": membership_id},
            )
            return real_today()

        monkeypatch.setattr(membership_service, "utc_today", _competing_write)
        with pytest.raises(StaleRecordError):
            membership_service.end_membership(membership_id, reason="임기 만료")
        monkeypatch.undo()

        reloaded = membership_service.get_membership(membership_id)
        assert reloaded.is_active is True
        assert reloaded.notes != "elsewhere"
        assert CHANGE_DEACTIVATED not in _history_types(membership_id)

        # Nothing half-written; a retry succeeds
        membership_service.end_membership(membership_id)
        assert membership_service.get_membership(membership_id).is_active is False


class TestStoredInvariants:

    def test_second_active_primary_rejected_by_index(self, org, monkeypatch):
        # Two requests that both passed the pre-check
        monkeypatch.setattr(membership_service, "_require_no_other_primary", lambda *a, **kw: None)

        with pytest.raises(StructuralIntegrityError):
            membership_service.add_membership(org.people.head.id, org.team.id, is_primary=True)

        primaries = [m for m in membership_service.list_person_memberships(org.people.head.id) if m.is_primary]
        assert len(primaries) == 1

    def test_ended_primary_does_not_block_a_new_one(self, org):
        membership = membership_service.list_person_memberships(org.people.head.id)[0]
        membership_service.end_membership(membership.id)

        result = membership_service.add_membership(org.people.head.id, org.team.id, is_primary=True)
        assert result.membership.is_primary is True
