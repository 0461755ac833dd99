"""create scan_gaps table

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000002'
down_revision: Union[str, None] = '20261018_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create scan_gaps table for blocks skipped after repeated failures."""
    op.create_table(
        'scan_gaps',
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('failures', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('block_number'),
    )


def downgrade() -> None:
    """Drop scan_gaps table."""
    op.drop_table('scan_gaps')
