"""create inventory cycle and global item tables

Revision ID: 3c1e7a9d2b40
Revises:
Create Date: 2026-10-18 10:12:44.318201

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1e7a9d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'inventory_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bot_id', sa.String(length=100), nullable=False),
        sa.Column('cycle_id', sa.String(length=64), nullable=False),
        sa.Column('date', sa.BigInteger(), nullable=False),
        sa.Column('sheets', sa.JSON(), nullable=False),
        sa.Column('is_finalized', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bot_id', 'cycle_id', name='uq_inventory_cycles_bot_cycle'),
    )
    op.create_index(op.f('ix_inventory_cycles_id'), 'inventory_cycles', ['id'], unique=False)
    op.create_index(op.f('ix_inventory_cycles_bot_id'), 'inventory_cycles', ['bot_id'], unique=False)
    op.create_index(op.f('ix_inventory_cycles_is_finalized'), 'inventory_cycles', ['is_finalized'], unique=False)

    op.create_table(
        'global_inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bot_id', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=500), nullable=False),
        sa.Column('unit', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bot_id', 'code', name='uq_global_inventory_items_bot_code'),
    )
    op.create_index(op.f('ix_global_inventory_items_id'), 'global_inventory_items', ['id'], unique=False)
    op.create_index(op.f('ix_global_inventory_items_bot_id'), 'global_inventory_items', ['bot_id'], unique=False)
    print("✓ [3c1e7a9d2b40] Created inventory_cycles and global_inventory_items")


def downgrade() -> None:
    op.drop_index(op.f('ix_global_inventory_items_bot_id'), table_name='global_inventory_items')
    op.drop_index(op.f('ix_global_inventory_items_id'), table_name='global_inventory_items')
    op.drop_table('global_inventory_items')
    op.drop_index(op.f('ix_inventory_cycles_is_finalized'), table_name='inventory_cycles')
    op.drop_index(op.f('ix_inventory_cycles_bot_id'), table_name='inventory_cycles')
    op.drop_index(op.f('ix_inventory_cycles_id'), table_name='inventory_cycles')
    op.drop_table('inventory_cycles')
