"""Add warehouse_activities (warehouse activity log)

Revision ID: 20261019_warehouse_activity
Revises: 20261018_initial
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_warehouse_activity'
down_revision = '20261018_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('warehouse_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('target_type', sa.String(length=16), nullable=False, server_default='PRODUCT'),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('target_name', sa.String(length=255), nullable=True),
        sa.Column('target_sku', sa.String(length=64), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('warehouse_activities', schema=None) as batch_op:
        batch_op.create_index('ix_warehouse_activities_user_created', ['user_id', 'created_at'], unique=False)
        batch_op.create_index('ix_warehouse_activities_action_created', ['action', 'created_at'], unique=False)
        batch_op.create_index('ix_warehouse_activities_target_created', ['target_id', 'created_at'], unique=False)


def downgrade():
    op.drop_table('warehouse_activities')
