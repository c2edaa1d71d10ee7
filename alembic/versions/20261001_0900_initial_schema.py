"""Initial InvoiceFlow schema

Revision ID: 20261001_0900_initial_schema
Revises:
Create Date: 2026-10-01 09:00:00.000000

Creates tables for:
- app_users: Accounts and roles
- department_hierarchies: Department / section / unit rows
- vendors, projects, lpos: Reference data invoices link to
- invoices, invoice_line_items: Invoices and extracted line items
- status_histories: Append-only status ledger
- invoice_comments: Discussion on invoices
- audit_logs: Append-only audit trail
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '20261001_0900_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


INVOICE_STATUS = postgresql.ENUM(
    'SUBMITTED', 'UNDER_REVIEW', 'APPROVED', 'IN_PROGRESS', 'PMO_REVIEW',
    'COMPLETED', 'REJECTED', 'CANCELLED', 'ON_HOLD',
    name='invoicestatus', create_type=False,
)
CURRENCY_TYPE = postgresql.ENUM(
    'USD', 'EUR', 'GBP', 'JPY', 'AED', 'QAR', 'KWD', 'BHD', 'OMR', 'SAR',
    name='currencytype', create_type=False,
)
USER_ROLE = postgresql.ENUM(
    'READ_ONLY', 'SECRETARY', 'PM', 'PMO', 'HEAD', 'ADMIN',
    name='userrole', create_type=False,
)
LPO_STATUS = postgresql.ENUM(
    'DRAFT', 'ISSUED', 'PARTIALLY_INVOICED', 'FULLY_INVOICED', 'CLOSED', 'CANCELLED',
    name='lpostatus', create_type=False,
)
AUDIT_ACTION = postgresql.ENUM(
    'CREATE', 'UPDATE', 'DELETE', 'STATUS_CHANGE', 'UPLOAD',
    'LOGIN', 'LOGOUT', 'LOGIN_FAILED', 'ACCOUNT_LOCKED',
    name='auditaction', create_type=False,
)
ENUMS = (INVOICE_STATUS, CURRENCY_TYPE, USER_ROLE, LPO_STATUS, AUDIT_ACTION)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _audit_fields():
    return [
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('modified_by', sa.String(255), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ===========================================
    # USERS AND ORGANISATION
    # ===========================================
    op.create_table(
        'app_users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', USER_ROLE, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_app_users_email', 'app_users', ['email'], unique=True)

    op.create_table(
        'department_hierarchies',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('department_name', sa.String(255), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=False),
        sa.Column('section_name', sa.String(255), nullable=False),
        sa.Column('section_abbreviation', sa.String(20), nullable=False,
                  comment='Used as the project number prefix'),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('unit_name', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_department_hierarchies_department_id', 'department_hierarchies', ['department_id'])
    op.create_index('ix_department_hierarchies_section_id', 'department_hierarchies', ['section_id'])

    # ===========================================
    # REFERENCE DATA
    # ===========================================
    op.create_table(
        'vendors',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('vendor_code', sa.String(50), nullable=True),
        sa.Column('contact_person', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('mobile', sa.String(50), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('tax_id', sa.String(100), nullable=True,
                  comment='Tax registration number printed on invoices'),
        sa.Column('bank_name', sa.String(255), nullable=True),
        sa.Column('bank_account_number', sa.String(100), nullable=True),
        sa.Column('iban', sa.String(50), nullable=True),
        sa.Column('swift_code', sa.String(20), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_audit_fields(),
        *_timestamps(),
        sa.UniqueConstraint('vendor_code', name='uq_vendors_vendor_code'),
    )
    op.create_index('ix_vendors_name', 'vendors', ['name'])
    op.create_index('ix_vendors_tax_id', 'vendors', ['tax_id'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_number', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('section_id', sa.Integer(),
                  sa.ForeignKey('department_hierarchies.id', ondelete='RESTRICT',
                                name='fk_projects_section_id_department_hierarchies'),
                  nullable=False),
        sa.Column('project_manager_id', sa.Integer(),
                  sa.ForeignKey('app_users.id', ondelete='SET NULL',
                                name='fk_projects_project_manager_id_app_users'),
                  nullable=True),
        sa.Column('budget', sa.Numeric(18, 3), nullable=True),
        sa.Column('cost', sa.Numeric(18, 3), nullable=True),
        sa.Column('currency', CURRENCY_TYPE, nullable=True),
        sa.Column('is_approved', sa.Boolean(), nullable=False),
        sa.Column('completion_percentage', sa.Integer(), nullable=True),
        sa.Column('expected_start', sa.Date(), nullable=True),
        sa.Column('expected_end', sa.Date(), nullable=True),
        *_audit_fields(),
        *_timestamps(),
    )
    op.create_index('ix_projects_project_number', 'projects', ['project_number'], unique=True)
    op.create_index('ix_projects_section_id', 'projects', ['section_id'])

    op.create_table(
        'lpos',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('lpo_number', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('status', LPO_STATUS, nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 3), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(18, 3), nullable=True),
        sa.Column('currency', CURRENCY_TYPE, nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('completion_date', sa.Date(), nullable=True),
        sa.Column('project_id', sa.Integer(),
                  sa.ForeignKey('projects.id', ondelete='RESTRICT', name='fk_lpos_project_id_projects'),
                  nullable=False),
        sa.Column('vendor_id', sa.Integer(),
                  sa.ForeignKey('vendors.id', ondelete='RESTRICT', name='fk_lpos_vendor_id_vendors'),
                  nullable=True),
        *_audit_fields(),
        *_timestamps(),
    )
    op.create_index('ix_lpos_lpo_number', 'lpos', ['lpo_number'], unique=True)
    op.create_index('ix_lpos_project_id', 'lpos', ['project_id'])
    op.create_index('ix_lpos_vendor_id', 'lpos', ['vendor_id'])

    # ===========================================
    # INVOICES
    # ===========================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_number', sa.String(100), nullable=False,
                  comment='PENDING when OCR could not extract it'),
        sa.Column('invoice_date', sa.Date(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('invoice_value', sa.Numeric(18, 3), nullable=True),
        sa.Column('sub_total', sa.Numeric(18, 3), nullable=True),
        sa.Column('tax_amount', sa.Numeric(18, 3), nullable=True),
        sa.Column('currency', CURRENCY_TYPE, nullable=True),
        sa.Column('status', INVOICE_STATUS, nullable=False),
        sa.Column('vendor_name', sa.String(255), nullable=False),
        sa.Column('vendor_tax_id', sa.String(100), nullable=False),
        sa.Column('vendor_address', sa.String(500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('purchase_order_number', sa.String(100), nullable=True),
        sa.Column('reference_number', sa.String(100), nullable=True),
        sa.Column('payment_terms', sa.String(255), nullable=True),
        sa.Column('remark', sa.Text(), nullable=True),
        sa.Column('vendor_id', sa.Integer(),
                  sa.ForeignKey('vendors.id', ondelete='RESTRICT', name='fk_invoices_vendor_id_vendors'),
                  nullable=True),
        sa.Column('project_id', sa.Integer(),
                  sa.ForeignKey('projects.id', ondelete='RESTRICT', name='fk_invoices_project_id_projects'),
                  nullable=True),
        sa.Column('lpo_id', sa.Integer(),
                  sa.ForeignKey('lpos.id', ondelete='RESTRICT', name='fk_invoices_lpo_id_lpos'),
                  nullable=True),
        sa.Column('file_path', sa.String(500), nullable=True),
        sa.Column('file_name', sa.String(255), nullable=True),
        sa.Column('file_type', sa.String(100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('ocr_confidence', sa.Float(), nullable=True),
        sa.Column('field_confidence_scores', sa.JSON(), nullable=True),
        sa.Column('ocr_raw_text', sa.Text(), nullable=True),
        sa.Column('requires_manual_review', sa.Boolean(), nullable=False),
        sa.Column('is_potential_duplicate', sa.Boolean(), nullable=False),
        sa.Column('duplicate_of_invoice_id', sa.Integer(),
                  sa.ForeignKey('invoices.id', ondelete='SET NULL',
                                name='fk_invoices_duplicate_of_invoice_id_invoices'),
                  nullable=True),
        sa.Column('processed_by', sa.String(255), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_amount', sa.Numeric(18, 3), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_audit_fields(),
        *_timestamps(),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_vendor_id', 'invoices', ['vendor_id'])
    op.create_index('ix_invoices_project_id', 'invoices', ['project_id'])
    op.create_index('ix_invoices_lpo_id', 'invoices', ['lpo_id'])

    op.create_table(
        'invoice_line_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_id', sa.Integer(),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE',
                                name='fk_invoice_line_items_invoice_id_invoices'),
                  nullable=False),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Numeric(15, 4), nullable=True),
        sa.Column('unit_price', sa.Numeric(18, 3), nullable=True),
        sa.Column('amount', sa.Numeric(18, 3), nullable=True),
        sa.Column('item_code', sa.String(100), nullable=True),
        sa.Column('unit', sa.String(50), nullable=True),
        sa.Column('confidence_score', sa.Float(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_invoice_line_items_invoice_id', 'invoice_line_items', ['invoice_id'])

    # ===========================================
    # LEDGER, COMMENTS AND AUDIT (append-only)
    # ===========================================
    op.create_table(
        'status_histories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_id', sa.Integer(),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE',
                                name='fk_status_histories_invoice_id_invoices'),
                  nullable=False),
        sa.Column('previous_status', INVOICE_STATUS, nullable=True),
        sa.Column('new_status', INVOICE_STATUS, nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('changed_by', sa.String(255), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
    )
    op.create_index('ix_status_histories_invoice_id', 'status_histories', ['invoice_id'])
    op.create_index('ix_status_histories_changed_at', 'status_histories', ['changed_at'])

    op.create_table(
        'invoice_comments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('invoice_id', sa.Integer(),
                  sa.ForeignKey('invoices.id', ondelete='CASCADE',
                                name='fk_invoice_comments_invoice_id_invoices'),
                  nullable=False),
        sa.Column('author', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        *_audit_fields(),
        *_timestamps(),
    )
    op.create_index('ix_invoice_comments_invoice_id', 'invoice_comments', ['invoice_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('actor', sa.String(255), nullable=True),
        sa.Column('action', AUDIT_ACTION, nullable=False),
        sa.Column('target_entity_type', sa.String(100), nullable=False),
        sa.Column('target_entity_id', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_target_entity_type', 'audit_logs', ['target_entity_type'])
    op.create_index('ix_audit_logs_target_entity_id', 'audit_logs', ['target_entity_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    for table in (
        'audit_logs',
        'invoice_comments',
        'status_histories',
        'invoice_line_items',
        'invoices',
        'lpos',
        'projects',
        'vendors',
        'department_hierarchies',
        'app_users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
