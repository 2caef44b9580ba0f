"""Per-company change log chain heads

Revision ID: 20261017_000002
Revises: 20261017_000001
Create Date: 2026-10-17 00:00:02

Heads are created on a company's next change log write, seeded from its
latest entry, so existing chains need no backfill.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '20261017_000002'
down_revision: Union[str, None] = '20261017_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'change_log_heads',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime()),
        sa.Column('company_id', sa.String(36), nullable=False, unique=True),
        sa.Column('last_sequence', sa.Integer(), nullable=False),
        sa.Column('last_hash', sa.String(64), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('change_log_heads')
