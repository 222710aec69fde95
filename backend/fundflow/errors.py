# Overview: Domain error taxonomy shared by services and routes.

"""
Every error the core raises on purpose derives from FundflowError.

Each kind carries:
- status: the HTTP status routes answer with
- code: a stable machine-readable identifier
- affordance: what a calling UI should offer the user
    fix-input      the caller can correct the request and try again
    retry          a concurrent change won; reload and retry
    contact-admin  the organization data must be fixed by an administrator

Store and I/O errors (SQLAlchemyError, OperationalError, ...) are NOT wrapped.
They propagate to the caller, and the operation counts as not applied.
"""

from __future__ import annotations


class FundflowError(Exception):
    status = 400
    code = "FUNDFLOW_ERROR"
    affordance = "fix-input"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "affordance": self.affordance,
        }


class ValidationError(FundflowError, ValueError):
    """400-level input problem."""
    status = 400
    code = "VALIDATION_ERROR"


class MissingRejectionReasonError(ValidationError):
    """A rejection requires a non-empty comment."""
    code = "MISSING_REJECTION_REASON"


class MissingEmailError(ValidationError):
    """The person has no email, so no login account can be issued."""
    code = "MISSING_EMAIL"


class NotFoundError(FundflowError, LookupError):
    """Requested record does not exist."""
    status = 404
    code = "NOT_FOUND"


class AuthorityError(FundflowError):
    """The actor lacks the authority for this action."""
    status = 403
    code = "AUTHORITY_DENIED"
    affordance = "contact-admin"


class ApproverMismatchError(AuthorityError):
    """Only the resolved approver of the current step may act on it."""
    code = "APPROVER_MISMATCH"


class OriginationNotAllowedError(AuthorityError):
    """The requester holds no role that may originate spending requests."""
    code = "ORIGINATION_NOT_ALLOWED"


class ConflictError(FundflowError, ValueError):
    """409-level business rule conflict."""
    status = 409
    code = "CONFLICT"


class StaleRecordError(ConflictError):
    """The record was changed by another request; reload and retry."""
    code = "STALE_RECORD"
    affordance = "retry"


class StaleStepError(StaleRecordError):
    """The step is no longer the current step of the flow."""
    code = "STALE_STEP"


class FlowAlreadyTerminalError(ConflictError):
    """The approval flow is already approved or rejected."""
    code = "FLOW_ALREADY_TERMINAL"


class InvalidStateError(ConflictError):
    """The record is not in a state that allows this action."""
    code = "INVALID_STATE"


class DuplicateMembershipError(ConflictError):
    """The person already has an active membership in this unit."""
    code = "DUPLICATE_MEMBERSHIP"


class StructuralIntegrityError(ConflictError):
    """The change would break the organization structure."""
    code = "STRUCTURAL_INTEGRITY"
    affordance = "contact-admin"


class UnresolvableApproverError(FundflowError):
    """No qualified approver exists for a required authority tier."""
    status = 422
    code = "UNRESOLVABLE_APPROVER"
    affordance = "contact-admin"

    def __init__(self, tier: int, unit_id: int | None = None):
        self.tier = tier
        self.unit_id = unit_id
        super().__init__(f"no qualified approver found for tier {tier}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["tier"] = self.tier
        return data
