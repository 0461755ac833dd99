"""create escrow indexer tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create indexing_state, escrows and queue_jobs tables."""
    op.create_table(
        'indexing_state',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('last_processed_block', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'escrows',
        sa.Column('address', sa.String(42), nullable=False),
        sa.Column('seller', sa.String(42), nullable=False),
        sa.Column('buyer', sa.String(42), nullable=False),
        sa.Column('token', sa.String(42), nullable=False),
        sa.Column('amount', sa.Text(), nullable=False, server_default='0'),
        sa.Column('timeout', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('address'),
    )
    op.create_index('ix_escrows_status', 'escrows', ['status'])

    op.create_table(
        'queue_jobs',
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('escrow_address', sa.String(42), nullable=False),
        sa.Column('transaction_hash', sa.String(66), nullable=True),
        sa.Column('raw_data', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='queued'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('block_number', 'log_index'),
    )
    op.create_index('ix_queue_jobs_escrow_address', 'queue_jobs', ['escrow_address'])
    op.create_index('ix_queue_jobs_status', 'queue_jobs', ['status'])


def downgrade() -> None:
    """Drop escrow indexer tables."""
    op.drop_index('ix_queue_jobs_status', table_name='queue_jobs')
    op.drop_index('ix_queue_jobs_escrow_address', table_name='queue_jobs')
    op.drop_table('queue_jobs')
    op.drop_index('ix_escrows_status', table_name='escrows')
    op.drop_table('escrows')
    op.drop_table('indexing_state')
