"""Per-symbol cache table

Revision ID: 0001_stock_cache
Revises:
Create Date: 2026-10-19 00:00:00.000000

One row per uppercase ticker holding the last merged JSON payload.  Rows
are overwritten on refresh; there is no history.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_stock_cache"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stock_cache",
        sa.Column("symbol", sa.String(20), primary_key=True),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("provenance", sa.String(16), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("stock_cache")
