# Overview: Approval matrix: which authority tiers a request must pass.

from __future__ import annotations

from flask import current_app, has_app_context

from ..authority import (
    FINAL_APPROVER_ROLES,
    FINANCIAL_STAFF_ROLES,
    SENIOR_APPROVER_ROLES,
    AuthorityTier,
    describe_tier,
)
from ..validation import EXPENSE_CATEGORIES, MAX_AMOUNT, ValidationError


DEFAULT_SENIOR_THRESHOLD = 500_000

# Categories that always take the full chain regardless of amount
FULL_CHAIN_CATEGORIES = frozenset({"CONSTRUCTION", "FACILITIES", "SALARY", "BONUS", "BENEFITS"})

# Fixed sequence; tiers are skipped, never reordered
TIER_SEQUENCE = (AuthorityTier.FINANCIAL, AuthorityTier.SENIOR, AuthorityTier.FINAL)


def senior_threshold() -> int:
    if has_app_context():
        return int(current_app.config.get("APPROVAL_SENIOR_THRESHOLD", DEFAULT_SENIOR_THRESHOLD))
    return DEFAULT_SENIOR_THRESHOLD


def required_tiers(amount: int, category: str, *, threshold: int | None = None) -> list[int]:
    """
    Tiers a request must pass, in approval order.

    Financial staff and the final approver always sign. The senior tier
    joins when the amount reaches the threshold or the category is one of
    FULL_CHAIN_CATEGORIES.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("amount must be a positive integer")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"amount cannot exceed {MAX_AMOUNT:,}")

    category = (category or "").upper()
    if category not in EXPENSE_CATEGORIES:
        raise ValidationError(f"Invalid category '{category}'")

    if threshold is None:
        threshold = senior_threshold()

    needs_senior = amount >= threshold or category in FULL_CHAIN_CATEGORIES

    return [
        tier
        for tier in TIER_SEQUENCE
        if tier != AuthorityTier.SENIOR or needs_senior
    ]


TIER_ROLES = {
    AuthorityTier.FINANCIAL: FINANCIAL_STAFF_ROLES,
    AuthorityTier.SENIOR: SENIOR_APPROVER_ROLES,
    AuthorityTier.FINAL: FINAL_APPROVER_ROLES,
}


def approval_matrix(*, threshold: int | None = None) -> dict:
    """The policy as a table: tiers, who fills them, and which apply per category."""
    if threshold is None:
        threshold = senior_threshold()

    categories = []
    for category in sorted(EXPENSE_CATEGORIES):
        below = required_tiers(threshold - 1, category, threshold=threshold) if threshold > 1 else None
        categories.append({
            "category": category,
            "full_chain": category in FULL_CHAIN_CATEGORIES,
            "below_threshold": below,
            "at_or_above_threshold": required_tiers(threshold, category, threshold=threshold),
        })

    return {
        "senior_threshold": threshold,
        "tiers": [
            {
                "tier": tier,
                "description": describe_tier(tier, False),
                "role_names": list(TIER_ROLES[tier]),
            }
            for tier in TIER_SEQUENCE
        ],
        "full_chain_categories": sorted(FULL_CHAIN_CATEGORIES),
        "categories": categories,
    }
