"""Create public identity tables (gym, admin, refresh_token, login_history)

Revision ID: 001_identity_tables
Revises:
Create Date: 2026-10-17 09:00:00

Per-tenant relations are not managed here; they are created in each gym's
own schema by the tenant provisioner.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_identity_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create identity tables with indexes."""
    op.create_table(
        'gym',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=63), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain')
    )

    op.create_table(
        'admin',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('email')
    )

    op.create_table(
        'refresh_token',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('user_type', sa.String(length=50), nullable=False),
        sa.Column('gym_id', sa.String(length=36), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
        sa.ForeignKeyConstraint(['gym_id'], ['gym.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            "user_type IN ('platform_admin', 'tenant_user')",
            name='ck_refresh_token_user_type'
        ),
        sa.CheckConstraint(
            "(user_type = 'platform_admin' AND gym_id IS NULL) OR "
            "(user_type = 'tenant_user' AND gym_id IS NOT NULL)",
            name='ck_refresh_token_gym_scope'
        )
    )

    op.create_index('idx_refresh_token_user', 'refresh_token', ['user_id', 'user_type'])
    op.create_index('idx_refresh_token_expires_at', 'refresh_token', ['expires_at'])

    # One live token per identity; NULL gym_id needs its own partial index
    op.create_index(
        'uq_refresh_token_admin_identity', 'refresh_token', ['user_id', 'user_type'],
        unique=True, postgresql_where=sa.text('gym_id IS NULL')
    )
    op.create_index(
        'uq_refresh_token_tenant_identity', 'refresh_token', ['user_id', 'user_type', 'gym_id'],
        unique=True, postgresql_where=sa.text('gym_id IS NOT NULL')
    )

    op.create_table(
        'login_history',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('user_type', sa.String(length=50), nullable=False),
        sa.Column('gym_id', sa.String(length=36), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('login_successful', sa.Boolean(), nullable=False),
        sa.Column('login_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "user_type IN ('platform_admin', 'tenant_user')",
            name='ck_login_history_user_type'
        )
    )

    op.create_index('idx_login_history_user', 'login_history', ['user_id', 'user_type'])
    op.create_index('idx_login_history_login_at', 'login_history', ['login_at'])


def downgrade() -> None:
    """Drop identity tables and all indexes."""
    op.drop_index('idx_login_history_login_at', table_name='login_history')
    op.drop_index('idx_login_history_user', table_name='login_history')
    op.drop_table('login_history')
    op.drop_index('uq_refresh_token_tenant_identity', table_name='refresh_token')
    op.drop_index('uq_refresh_token_admin_identity', table_name='refresh_token')
    op.drop_index('idx_refresh_token_expires_at', table_name='refresh_token')
    op.drop_index('idx_refresh_token_user', table_name='refresh_token')
    op.drop_table('refresh_token')
    op.drop_table('admin')
    op.drop_table('gym')
