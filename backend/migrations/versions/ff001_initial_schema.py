"""initial schema

Revision ID: ff001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete fundflow schema:
- tenants, organization_units, organization_roles, role_bindings
- people, memberships, membership_history (append-only)
- user_accounts, credential_notices, session_tokens
- notification_outbox
- expense_reports, approval_flows, approval_steps, approval_audit (append-only)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'ff001'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # Tenancy and organization tree
    # ============================================================================
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table(
        'organization_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=True),
        sa.Column('level', sa.String(length=16), nullable=False, server_default='LEVEL_1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_units_tenant_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organization_units_tenant_id', 'organization_units', ['tenant_id'])
    op.create_index('ix_organization_units_parent_id', 'organization_units', ['parent_id'])
    op.create_index('ix_units_tenant_parent', 'organization_units', ['tenant_id', 'parent_id'])
    op.create_index(
        'uq_units_one_root_per_tenant', 'organization_units', ['tenant_id'], unique=True,
        sqlite_where=sa.text('parent_id IS NULL'), postgresql_where=sa.text('parent_id IS NULL'),
    )

    op.create_table(
        'organization_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('english_name', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_leadership', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_roles_tenant_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organization_roles_tenant_id', 'organization_roles', ['tenant_id'])

    # ============================================================================
    # People and accounts
    # ============================================================================
    op.create_table(
        'people',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_people_tenant_id', 'people', ['tenant_id'])
    op.create_index('ix_people_tenant_email', 'people', ['tenant_id', 'email'])

    op.create_table(
        'user_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('person_id', sa.Integer(), sa.ForeignKey('people.id'), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('system_role', sa.String(length=32), nullable=False, server_default='GENERAL_USER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('credential_hash', sa.String(length=255), nullable=False),
        sa.Column('must_change_credential', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_credential_change_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_user_accounts_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_accounts_tenant_id', 'user_accounts', ['tenant_id'])
    op.create_index('ix_user_accounts_person_id', 'user_accounts', ['person_id'])
    op.create_index('ix_user_accounts_system_role', 'user_accounts', ['system_role'])
    op.create_index('ix_user_accounts_tenant_active', 'user_accounts', ['tenant_id', 'is_active'])

    op.create_table(
        'role_bindings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('organization_roles.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('unit_id', 'role_id', name='uq_role_bindings_unit_role'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_bindings_unit_id', 'role_bindings', ['unit_id'])
    op.create_index('ix_role_bindings_role_id', 'role_bindings', ['role_id'])
    op.create_index('ix_role_bindings_is_active', 'role_bindings', ['is_active'])

    op.create_table(
        'memberships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('person_id', sa.Integer(), sa.ForeignKey('people.id'), nullable=False),
        sa.Column('unit_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=False),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('organization_roles.id'), nullable=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('join_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_memberships_person_id', 'memberships', ['person_id'])
    op.create_index('ix_memberships_unit_id', 'memberships', ['unit_id'])
    op.create_index('ix_memberships_role_id', 'memberships', ['role_id'])
    op.create_index('ix_memberships_person_active', 'memberships', ['person_id', 'is_active'])
    op.create_index('ix_memberships_unit_active', 'memberships', ['unit_id', 'is_active'])
    op.create_index(
        'uq_memberships_one_active_primary', 'memberships', ['person_id'], unique=True,
        sqlite_where=sa.text('is_active AND is_primary'), postgresql_where=sa.text('is_active AND is_primary'),
    )

    op.create_table(
        'membership_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('membership_id', sa.Integer(), sa.ForeignKey('memberships.id'), nullable=False),
        sa.Column('change_type', sa.String(length=32), nullable=False),
        sa.Column('previous_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('changed_by_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_membership_history_membership_id', 'membership_history', ['membership_id'])
    op.create_index('ix_membership_history_change_type', 'membership_history', ['change_type'])
    op.create_index('ix_membership_history_membership', 'membership_history', ['membership_id', 'created_at'])

    op.create_table(
        'credential_notices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('person_id', sa.Integer(), sa.ForeignKey('people.id'), nullable=True),
        sa.Column('has_phone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('role_name', sa.String(length=64), nullable=True),
        sa.Column('role_description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credential_notices_account_id', 'credential_notices', ['account_id'])
    op.create_index('ix_credential_notices_person_id', 'credential_notices', ['person_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_account_id', 'session_tokens', ['account_id'])
    op.create_index('ix_session_tokens_tenant_id', 'session_tokens', ['tenant_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_account_active', 'session_tokens', ['account_id', 'is_revoked'])

    op.create_table(
        'notification_outbox',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('person_id', sa.Integer(), sa.ForeignKey('people.id'), nullable=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=True),
        sa.Column('template', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notification_outbox_person_id', 'notification_outbox', ['person_id'])
    op.create_index('ix_notification_outbox_account_id', 'notification_outbox', ['account_id'])
    op.create_index('ix_notification_outbox_template', 'notification_outbox', ['template'])
    op.create_index('ix_notification_outbox_pending', 'notification_outbox', ['delivered_at', 'created_at'])

    # ============================================================================
    # Expense reports and approval flows
    # ============================================================================
    op.create_table(
        'expense_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('organization_unit_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='OTHER'),
        sa.Column('workflow_status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expense_reports_tenant_id', 'expense_reports', ['tenant_id'])
    op.create_index('ix_expense_reports_requester_id', 'expense_reports', ['requester_id'])
    op.create_index('ix_expense_reports_organization_unit_id', 'expense_reports', ['organization_unit_id'])
    op.create_index('ix_expense_reports_workflow_status', 'expense_reports', ['workflow_status'])
    op.create_index('ix_expense_reports_created_at', 'expense_reports', ['created_at'])
    op.create_index('ix_expense_reports_tenant_status', 'expense_reports', ['tenant_id', 'workflow_status'])
    op.create_index('ix_expense_reports_requester', 'expense_reports', ['requester_id', 'created_at'])

    op.create_table(
        'approval_flows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('subject_request_id', sa.Integer(), sa.ForeignKey('expense_reports.id'), nullable=False),
        sa.Column('origin_unit_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=False),
        sa.Column('requester_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('total_steps', sa.Integer(), nullable=False),
        sa.Column('current_step_index', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('subject_request_id', name='uq_approval_flows_subject'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_approval_flows_tenant_id', 'approval_flows', ['tenant_id'])
    op.create_index('ix_approval_flows_origin_unit_id', 'approval_flows', ['origin_unit_id'])
    op.create_index('ix_approval_flows_requester_user_id', 'approval_flows', ['requester_user_id'])
    op.create_index('ix_approval_flows_status', 'approval_flows', ['status'])

    op.create_table(
        'approval_steps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('flow_id', sa.Integer(), sa.ForeignKey('approval_flows.id'), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('required_authority_tier', sa.Integer(), nullable=False),
        sa.Column('resolved_approver_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('resolved_organization_unit_id', sa.Integer(), sa.ForeignKey('organization_units.id'), nullable=False),
        sa.Column('approver_role_name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('flow_id', 'step_order', name='uq_approval_steps_flow_order'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_approval_steps_flow_id', 'approval_steps', ['flow_id'])
    op.create_index('ix_approval_steps_approver_status', 'approval_steps', ['resolved_approver_user_id', 'status'])

    op.create_table(
        'approval_audit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('flow_id', sa.Integer(), sa.ForeignKey('approval_flows.id'), nullable=False),
        sa.Column('step_order', sa.Integer(), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('user_accounts.id'), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_approval_audit_flow_id', 'approval_audit', ['flow_id'])
    op.create_index('ix_approval_audit_actor_user_id', 'approval_audit', ['actor_user_id'])
    op.create_index('ix_approval_audit_flow', 'approval_audit', ['flow_id', 'occurred_at'])


def downgrade():
    for table in (
        'approval_audit',
        'approval_steps',
        'approval_flows',
        'expense_reports',
        'notification_outbox',
        'session_tokens',
        'credential_notices',
        'membership_history',
        'memberships',
        'role_bindings',
        'user_accounts',
        'people',
        'organization_roles',
        'organization_units',
        'tenants',
    ):
        op.drop_table(table)
