# Overview: Pytest coverage for the organization tree and role bindings.

import pytest
from sqlalchemy.exc import IntegrityError

from fundflow.errors import ConflictError, StructuralIntegrityError
from fundflow.extensions import db
from fundflow.models import OrganizationUnit, RoleBinding
from fundflow.services import hierarchy_service
from fundflow.services.hierarchy_service import (
    UNASSIGN_INHERITED_ONLY,
    UNASSIGN_NOT_BOUND,
    UNASSIGN_REMOVED,
)


class TestTenantAndUnits:

    def test_tenant_gets_single_root(self, tenant):
        root = hierarchy_service.get_root_unit(tenant.id)
        assert root.parent_id is None
        assert root.level == "LEVEL_1"

        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.create_unit(tenant.id, "두번째 루트")

    def test_second_root_rejected_by_index(self, tenant, monkeypatch):
        # A concurrent creator that passed the root pre-check
        monkeypatch.setattr(hierarchy_service, "get_root_unit", lambda tenant_id: None)

        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.create_unit(tenant.id, "두번째 루트")
        monkeypatch.undo()

        roots = db.session.query(OrganizationUnit).filter_by(tenant_id=tenant.id, parent_id=None).all()
        assert len(roots) == 1

    def test_unit_code_conflict_is_not_a_root_error(self, org):
        hierarchy_service.create_unit(org.tenant.id, "성가대", parent_id=org.root.id, code="CHOIR")
        with pytest.raises(IntegrityError):
            hierarchy_service.create_unit(org.tenant.id, "성가대2", parent_id=org.root.id, code="CHOIR")
        db.session.rollback()

    def test_child_level_defaults_below_parent(self, org):
        assert org.committee.level == "LEVEL_2"
        assert org.department.level == "LEVEL_3"
        assert org.team.level == "LEVEL_4"

    def test_child_cannot_outrank_parent(self, org):
        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.create_unit(org.tenant.id, "역전", parent_id=org.department.id, level="LEVEL_2")

    def test_parent_from_other_tenant_rejected(self, org):
        other = hierarchy_service.create_tenant("다른교회", "OTHER")
        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.create_unit(other.id, "침입", parent_id=org.department.id)

    def test_ancestors_nearest_first(self, org):
        chain = hierarchy_service.get_ancestors(org.team.id)
        assert [u.id for u in chain] == [org.department.id, org.committee.id, org.root.id]

    def test_descendants_and_tree(self, org):
        ids = hierarchy_service.get_descendant_ids(org.committee.id)
        assert set(ids) == {org.committee.id, org.department.id, org.team.id}

        tree = hierarchy_service.get_unit_tree(org.root.id)
        names = sorted(child["unit"]["name"] for child in tree["children"])
        assert names == ["선교회", "재정위원회"]

    def test_depth_bound(self, app, tenant):
        app.config["MAX_HIERARCHY_DEPTH"] = 3
        try:
            root = hierarchy_service.get_root_unit(tenant.id)
            a = hierarchy_service.create_unit(tenant.id, "A", parent_id=root.id)
            hierarchy_service.create_unit(tenant.id, "B", parent_id=a.id)
            b = db.session.query(OrganizationUnit).filter_by(name="B").one()
            with pytest.raises(StructuralIntegrityError):
                hierarchy_service.create_unit(tenant.id, "C", parent_id=b.id)
        finally:
            app.config["MAX_HIERARCHY_DEPTH"] = 32


class TestMoveUnit:

    def test_move_under_own_descendant_is_cycle(self, org):
        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.move_unit(org.committee.id, org.team.id)
        db.session.refresh(org.committee)
        assert org.committee.parent_id == org.root.id

    def test_move_to_self_rejected(self, org):
        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.move_unit(org.department.id, org.department.id)

    def test_root_cannot_move(self, org):
        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.move_unit(org.root.id, org.mission.id)

    def test_valid_move(self, org):
        moved = hierarchy_service.move_unit(org.team.id, org.mission.id)
        assert moved.parent_id == org.mission.id
        chain = hierarchy_service.get_ancestors(org.team.id)
        assert [u.id for u in chain] == [org.mission.id, org.root.id]

    def test_cycle_in_stored_data_is_detected(self, org):
        # Corrupt the tree behind the service's back
        db.session.query(OrganizationUnit).filter_by(id=org.root.id).update({"parent_id": org.team.id})
        db.session.commit()

        with pytest.raises(StructuralIntegrityError):
            hierarchy_service.get_ancestors(org.team.id)


class TestRoles:

    def test_seed_is_idempotent(self, tenant):
        assert hierarchy_service.seed_standard_roles(tenant.id) == 0

    def test_duplicate_role_name_conflicts(self, tenant):
        with pytest.raises(ConflictError):
            hierarchy_service.create_role(tenant.id, "회계")

    def test_update_role_metadata(self, tenant):
        role = hierarchy_service.create_role(tenant.id, "찬양리더", level=10)
        updated = hierarchy_service.update_role(role.id, level=35, is_leadership=True)
        assert updated.level == 35
        assert updated.is_leadership is True


class TestBindings:

    def test_effective_roles_direct_first_then_inherited(self, org):
        roles = hierarchy_service.get_effective_roles(org.department.id)
        names = [r.role.name for r in roles]
        assert names[:3] == ["부장", "회계", "부회계"]
        assert names[3:] == ["위원장", "부원"]
        assert all(r.is_direct for r in roles[:3])
        inherited = roles[3]
        assert inherited.is_direct is False
        assert inherited.source_unit_id == org.root.id

    def test_descendant_inherits(self, org):
        assert hierarchy_service.is_role_available(org.team.id, org.roles["회계"].id)
        assert not hierarchy_service.is_role_available(org.mission.id, org.roles["회계"].id)

    def test_unassign_inherited_is_reported_noop(self, org):
        result = hierarchy_service.unassign_role(org.team.id, org.roles["회계"].id)
        assert result.changed is False
        assert result.reason == UNASSIGN_INHERITED_ONLY
        assert hierarchy_service.is_role_available(org.team.id, org.roles["회계"].id)

    def test_unassign_unknown_binding(self, org):
        result = hierarchy_service.unassign_role(org.mission.id, org.roles["회계"].id)
        assert result.reason == UNASSIGN_NOT_BOUND

    def test_unassign_direct(self, org):
        result = hierarchy_service.unassign_role(org.department.id, org.roles["부회계"].id)
        assert result.changed is True
        assert result.reason == UNASSIGN_REMOVED
        assert not hierarchy_service.is_role_available(org.team.id, org.roles["부회계"].id)

    def test_replace_existing_is_full_replace(self, org):
        result = hierarchy_service.assign_role(
            org.department.id, [org.roles["총무"].id], replace_existing=True
        )
        assert sorted(result.removed_role_ids) == sorted(
            [org.roles["부장"].id, org.roles["회계"].id, org.roles["부회계"].id]
        )
        direct = [r.role.name for r in hierarchy_service.get_effective_roles(org.department.id) if r.is_direct]
        assert direct == ["총무"]

    def test_propagate_materializes_bindings(self, org):
        result = hierarchy_service.assign_role(
            org.committee.id, [org.roles["서기"].id], propagate_to_descendants=True
        )
        assert set(result.propagated_unit_ids) == {org.department.id, org.team.id}
        assert db.session.query(RoleBinding).filter_by(
            unit_id=org.team.id, role_id=org.roles["서기"].id, is_active=True
        ).count() == 1

        team_roles = {r.role.name: r for r in hierarchy_service.get_effective_roles(org.team.id)}
        assert team_roles["서기"].is_direct is True

    def test_reassign_reactivates_binding(self, org):
        hierarchy_service.unassign_role(org.department.id, org.roles["부회계"].id)
        hierarchy_service.assign_role(org.department.id, [org.roles["부회계"].id])
        assert db.session.query(RoleBinding).filter_by(
            unit_id=org.department.id, role_id=org.roles["부회계"].id
        ).count() == 1
        assert hierarchy_service.is_role_available(org.department.id, org.roles["부회계"].id)
