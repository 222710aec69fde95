from .tenancy import Tenant
from .organization import OrganizationUnit, OrganizationRole, RoleBinding, Person, Membership, MembershipHistory, UNIT_LEVELS
from .auth import UserAccount, CredentialNotice, SessionToken
from .communications import NotificationOutbox
from .approvals import ExpenseReport, ApprovalFlow, ApprovalStep, ApprovalAudit

__all__ = [
    'Tenant',
    'OrganizationUnit', 'OrganizationRole', 'RoleBinding', 'Person', 'Membership', 'MembershipHistory', 'UNIT_LEVELS',
    'UserAccount', 'CredentialNotice', 'SessionToken',
    'NotificationOutbox',
    'ExpenseReport', 'ApprovalFlow', 'ApprovalStep', 'ApprovalAudit',
]
