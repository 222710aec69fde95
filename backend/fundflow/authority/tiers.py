# Overview: Authority tier and system role constants.


class AuthorityTier:
    """Approval authority tiers. Higher tiers approve later in the chain."""
    NONE = 0
    FINANCIAL = 1   # 1단계: treasurer level, also writes expense reports
    SENIOR = 2      # 2단계: department head level
    FINAL = 3       # 3단계 및 최종승인

    APPROVING = (FINANCIAL, SENIOR, FINAL)


class SystemRole:
    """System roles carried by login accounts."""
    SUPER_ADMIN = "SUPER_ADMIN"
    COMMITTEE_CHAIR = "COMMITTEE_CHAIR"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    DEPARTMENT_ACCOUNTANT = "DEPARTMENT_ACCOUNTANT"
    BUDGET_MANAGER = "BUDGET_MANAGER"
    MINISTER = "MINISTER"
    GENERAL_USER = "GENERAL_USER"

    # May edit organization structure, roles and memberships
    ADMIN_ROLES = (SUPER_ADMIN, COMMITTEE_CHAIR)

    # May record payment of an approved request
    PAYMENT_ROLES = (SUPER_ADMIN, COMMITTEE_CHAIR, DEPARTMENT_HEAD, DEPARTMENT_ACCOUNTANT)

    ALL = (
        SUPER_ADMIN,
        COMMITTEE_CHAIR,
        DEPARTMENT_HEAD,
        DEPARTMENT_ACCOUNTANT,
        BUDGET_MANAGER,
        MINISTER,
        GENERAL_USER,
    )
