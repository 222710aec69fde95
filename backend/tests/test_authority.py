# Overview: Pytest coverage for role-name to authority resolution.

import pytest

from fundflow.authority import (
    FINAL_APPROVER_ROLES,
    FINANCIAL_STAFF_ROLES,
    SENIOR_APPROVER_ROLES,
    AuthorityTier,
    SystemRole,
    all_role_mappings,
    resolve_authority,
)


class TestResolveAuthority:

    def test_parish_head_is_final_approver(self):
        profile = resolve_authority("교구장")
        assert profile.authority_tier == AuthorityTier.FINAL
        assert profile.needs_account is True
        assert profile.system_role == SystemRole.COMMITTEE_CHAIR

    def test_soprano_has_no_authority(self):
        profile = resolve_authority("소프라노")
        assert profile.authority_tier == AuthorityTier.NONE
        assert profile.needs_account is False
        assert profile.can_originate_request is False
        assert profile.system_role == SystemRole.GENERAL_USER

    @pytest.mark.parametrize("name", [None, "", "   ", "\t\n", "unknown-role", 42, "회 계"])
    def test_total_over_odd_input(self, name):
        profile = resolve_authority(name)
        assert profile.authority_tier == AuthorityTier.NONE
        assert profile.needs_account is False
        assert profile.description

    def test_surrounding_whitespace_is_ignored(self):
        assert resolve_authority("  회계 ").authority_tier == AuthorityTier.FINANCIAL
        assert resolve_authority("  회계 ").role_name == "회계"

    @pytest.mark.parametrize("name", FINAL_APPROVER_ROLES)
    def test_final_approvers(self, name):
        profile = resolve_authority(name)
        assert profile.authority_tier == AuthorityTier.FINAL
        assert profile.needs_account is True
        assert profile.system_role == SystemRole.COMMITTEE_CHAIR

    @pytest.mark.parametrize("name", SENIOR_APPROVER_ROLES)
    def test_senior_approvers(self, name):
        profile = resolve_authority(name)
        assert profile.authority_tier == AuthorityTier.SENIOR
        assert profile.system_role == SystemRole.DEPARTMENT_HEAD

    @pytest.mark.parametrize("name", FINANCIAL_STAFF_ROLES)
    def test_financial_staff_can_originate(self, name):
        profile = resolve_authority(name)
        assert profile.authority_tier == AuthorityTier.FINANCIAL
        assert profile.needs_account is True
        assert profile.can_originate_request is True
        assert profile.system_role == SystemRole.DEPARTMENT_ACCOUNTANT

    def test_ministry_titles(self):
        assert resolve_authority("담임목사").system_role == SystemRole.MINISTER
        assert resolve_authority("전도사").system_role == SystemRole.MINISTER
        # Ministry rule wins over the leadership set
        assert resolve_authority("교역자").system_role == SystemRole.MINISTER
        assert resolve_authority("교역자").needs_account is False

    def test_leadership_and_management_have_no_tier(self):
        leader = resolve_authority("회장")
        assert leader.system_role == SystemRole.DEPARTMENT_HEAD
        assert leader.authority_tier == AuthorityTier.NONE
        assert leader.needs_account is False

        clerk = resolve_authority("서기")
        assert clerk.system_role == SystemRole.BUDGET_MANAGER
        assert clerk.needs_account is False

    def test_descriptions(self):
        assert resolve_authority("위원장").description == "3단계 및 최종승인 권한, 지출결의서 작성 가능"
        assert resolve_authority("부장").description == "2단계 승인 권한, 지출결의서 작성 가능"
        assert resolve_authority("부원").description == "승인 권한 없음"


class TestRoleMappings:

    def test_every_known_name_listed_once(self):
        names = [p.role_name for p in all_role_mappings()]
        assert len(names) == len(set(names))
        assert names[:4] == list(FINAL_APPROVER_ROLES)
        assert "교역자" in names

    def test_accounts_follow_approval_authority(self):
        for profile in all_role_mappings():
            approving = profile.authority_tier in AuthorityTier.APPROVING
            assert profile.needs_account is approving
            assert profile.can_originate_request is approving
