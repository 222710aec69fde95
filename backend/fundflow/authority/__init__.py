# Overview: Authority package.
# Re-exports the role-name to system-authority mapping.

from .tiers import AuthorityTier, SystemRole
from .definitions import (
    FINAL_APPROVER_ROLES,
    SENIOR_APPROVER_ROLES,
    FINANCIAL_STAFF_ROLES,
    LEADERSHIP_ROLES,
    MANAGEMENT_ROLES,
    STANDARD_ROLES,
)
from .mapper import (
    AuthorityProfile,
    resolve_authority,
    all_role_mappings,
    describe_tier,
    normalize_role_name,
)

__all__ = [
    "AuthorityTier",
    "SystemRole",
    "FINAL_APPROVER_ROLES",
    "SENIOR_APPROVER_ROLES",
    "FINANCIAL_STAFF_ROLES",
    "LEADERSHIP_ROLES",
    "MANAGEMENT_ROLES",
    "STANDARD_ROLES",
    "AuthorityProfile",
    "resolve_authority",
    "all_role_mappings",
    "describe_tier",
    "normalize_role_name",
]
