# Overview: Maps an organization role name to system authority.

"""
resolve_authority is pure and total: any input (None, blank, unknown names)
yields a profile, and it never touches the database.

Priority, first match wins:
1. final approver set           -> tier 3
2. senior approver set          -> tier 2
3. financial staff set          -> tier 1
4. ministry titles              -> MINISTER, tier 0
5. leadership / management sets -> DEPARTMENT_HEAD / BUDGET_MANAGER, tier 0
6. anything else                -> GENERAL_USER, tier 0
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from .definitions import (
    CHAIR_KEYWORDS,
    FINAL_APPROVER_ROLES,
    FINANCIAL_STAFF_ROLES,
    LEADERSHIP_ROLES,
    MANAGEMENT_ROLES,
    MINISTRY_EXACT,
    MINISTRY_KEYWORDS,
    ORIGINATION_SUFFIX,
    SENIOR_APPROVER_ROLES,
    TIER_DESCRIPTIONS,
)
from .tiers import AuthorityTier, SystemRole


@dataclass(frozen=True)
class AuthorityProfile:
    role_name: str
    system_role: str
    authority_tier: int
    needs_account: bool
    can_originate_request: bool
    description: str

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_role_name(role_name) -> str:
    if not isinstance(role_name, str):
        return ""
    return role_name.strip()


def _tier_for(name: str) -> int:
    if name in FINAL_APPROVER_ROLES:
        return AuthorityTier.FINAL
    if name in SENIOR_APPROVER_ROLES:
        return AuthorityTier.SENIOR
    if name in FINANCIAL_STAFF_ROLES:
        return AuthorityTier.FINANCIAL
    return AuthorityTier.NONE


def _system_role_for(name: str) -> str:
    if name in FINAL_APPROVER_ROLES:
        if any(k in name for k in CHAIR_KEYWORDS):
            return SystemRole.COMMITTEE_CHAIR
        return SystemRole.DEPARTMENT_HEAD

    if name in SENIOR_APPROVER_ROLES:
        return SystemRole.DEPARTMENT_HEAD

    if name in FINANCIAL_STAFF_ROLES:
        return SystemRole.DEPARTMENT_ACCOUNTANT

    if any(k in name for k in MINISTRY_KEYWORDS) or name in MINISTRY_EXACT:
        return SystemRole.MINISTER

    if name in LEADERSHIP_ROLES:
        return SystemRole.DEPARTMENT_HEAD

    if name in MANAGEMENT_ROLES:
        return SystemRole.BUDGET_MANAGER

    return SystemRole.GENERAL_USER


def describe_tier(tier: int, can_originate: bool) -> str:
    desc = TIER_DESCRIPTIONS.get(tier, TIER_DESCRIPTIONS[0])
    if can_originate and tier > 0:
        desc = f"{desc}, {ORIGINATION_SUFFIX}"
    return desc


def resolve_authority(role_name) -> AuthorityProfile:
    """Return the authority profile for an organization role name."""
    name = normalize_role_name(role_name)
    tier = _tier_for(name)

    # Account and origination rights both follow approval authority
    approving = tier in AuthorityTier.APPROVING

    return AuthorityProfile(
        role_name=name,
        system_role=_system_role_for(name),
        authority_tier=tier,
        needs_account=approving,
        can_originate_request=approving,
        description=describe_tier(tier, approving),
    )


def all_role_mappings() -> list[AuthorityProfile]:
    """Profiles for every role name the mapper knows, in priority order."""
    seen: list[str] = []
    for group in (
        FINAL_APPROVER_ROLES,
        SENIOR_APPROVER_ROLES,
        FINANCIAL_STAFF_ROLES,
        LEADERSHIP_ROLES,
        MANAGEMENT_ROLES,
    ):
        for name in group:
            if name not in seen:
                seen.append(name)
    return [resolve_authority(name) for name in seen]
