"""Initial schema - mirror records and cycle history

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'mirror_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('sync_status', sa.String(), nullable=False),
        sa.Column('remote_id', sa.String(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('channel', 'sku', name='uq_mirror_records_channel_sku'),
    )
    op.create_index(op.f('ix_mirror_records_id'), 'mirror_records', ['id'], unique=False)
    op.create_index(op.f('ix_mirror_records_channel'), 'mirror_records', ['channel'], unique=False)
    op.create_index(op.f('ix_mirror_records_sku'), 'mirror_records', ['sku'], unique=False)
    op.create_index(op.f('ix_mirror_records_sync_status'), 'mirror_records', ['sync_status'], unique=False)
    op.create_index(op.f('ix_mirror_records_remote_id'), 'mirror_records', ['remote_id'], unique=False)

    op.create_table(
        'sync_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('outcome', sa.String(), nullable=False),
        sa.Column('single_sku', sa.String(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('abort_reason', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sync_cycles_id'), 'sync_cycles', ['id'], unique=False)
    op.create_index(op.f('ix_sync_cycles_run_id'), 'sync_cycles', ['run_id'], unique=True)
    op.create_index(op.f('ix_sync_cycles_channel'), 'sync_cycles', ['channel'], unique=False)
    op.create_index(op.f('ix_sync_cycles_outcome'), 'sync_cycles', ['outcome'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_sync_cycles_outcome'), table_name='sync_cycles')
    op.drop_index(op.f('ix_sync_cycles_channel'), table_name='sync_cycles')
    op.drop_index(op.f('ix_sync_cycles_run_id'), table_name='sync_cycles')
    op.drop_index(op.f('ix_sync_cycles_id'), table_name='sync_cycles')
    op.drop_table('sync_cycles')

    op.drop_index(op.f('ix_mirror_records_remote_id'), table_name='mirror_records')
    op.drop_index(op.f('ix_mirror_records_sync_status'), table_name='mirror_records')
    op.drop_index(op.f('ix_mirror_records_sku'), table_name='mirror_records')
    op.drop_index(op.f('ix_mirror_records_channel'), table_name='mirror_records')
    op.drop_index(op.f('ix_mirror_records_id'), table_name='mirror_records')
    op.drop_table('mirror_records')
