"""create owners, form templates, instances, responses and audit logs

Revision ID: 4f1c2a9b7d30
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '4f1c2a9b7d30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    conn = op.get_bind()
    inspector = inspect(conn)
    tables = inspector.get_table_names()

    if 'owners' not in tables:
        op.create_table(
            'owners',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=True),
            sa.Column('business_name', sa.String(length=200), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('last_login_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id', name='pk_owners'),
            sa.UniqueConstraint('email', name='uq_owners_email')
        )

    if 'form_templates' not in tables:
        op.create_table(
            'form_templates',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('slug', sa.String(length=200), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('field_schema', sa.JSON(), nullable=False),
            sa.Column('ui_schema', sa.JSON(), nullable=True),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id', name='pk_form_templates'),
            sa.UniqueConstraint('slug', name='uq_form_templates_slug')
        )

    if 'form_instances' not in tables:
        op.create_table(
            'form_instances',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('template_id', sa.Integer(), nullable=False),
            sa.Column('owner_id', sa.Integer(), nullable=False),
            sa.Column('client_email', sa.String(length=255), nullable=False),
            sa.Column('secure_token', sa.String(length=128), nullable=False),
            sa.Column('personal_message', sa.Text(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='SENT'),
            sa.Column('schema_snapshot', sa.JSON(), nullable=False),
            sa.Column('template_version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('expires_at', sa.DateTime(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('opened_at', sa.DateTime(), nullable=True),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(['template_id'], ['form_templates.id'], name='fk_form_instances_template_id', ondelete='RESTRICT'),
            sa.ForeignKeyConstraint(['owner_id'], ['owners.id'], name='fk_form_instances_owner_id', ondelete='RESTRICT'),
            sa.CheckConstraint('expires_at > created_at', name='ck_form_instances_expiry_after_creation'),
            sa.PrimaryKeyConstraint('id', name='pk_form_instances')
        )
        op.create_index('ix_form_instances_secure_token', 'form_instances', ['secure_token'], unique=True)
        op.create_index('ix_form_instances_status_expires_at', 'form_instances', ['status', 'expires_at'])
        op.create_index('ix_form_instances_owner_created_at', 'form_instances', ['owner_id', 'created_at'])

    if 'form_responses' not in tables:
        op.create_table(
            'form_responses',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('instance_id', sa.Integer(), nullable=False),
            sa.Column('draft_data', sa.JSON(), nullable=True),
            sa.Column('submitted_data', sa.JSON(), nullable=True),
            sa.Column('submission_id', sa.String(length=40), nullable=True),
            sa.Column('last_saved_at', sa.DateTime(), nullable=True),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.Column('submission_ip', sa.String(length=45), nullable=True),
            sa.Column('submission_user_agent', sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(['instance_id'], ['form_instances.id'], name='fk_form_responses_instance_id', ondelete='RESTRICT'),
            sa.PrimaryKeyConstraint('id', name='pk_form_responses')
        )
        op.create_index('ix_form_responses_instance_id', 'form_responses', ['instance_id'], unique=True)
        op.create_index('ix_form_responses_submission_id', 'form_responses', ['submission_id'], unique=True)

    if 'audit_logs' not in tables:
        op.create_table(
            'audit_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('entity_type', sa.String(length=50), nullable=False),
            sa.Column('entity_id', sa.String(length=64), nullable=False),
            sa.Column('action', sa.String(length=50), nullable=False),
            sa.Column('actor_type', sa.String(length=20), nullable=False),
            sa.Column('actor_id', sa.String(length=255), nullable=True),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=500), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id', name='pk_audit_logs')
        )
        op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])
        op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('form_responses')
    op.drop_table('form_instances')
    op.drop_table('form_templates')
    op.drop_table('owners')
