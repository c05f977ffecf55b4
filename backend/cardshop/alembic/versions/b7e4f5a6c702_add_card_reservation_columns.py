"""Add card reservation columns

Revision ID: b7e4f5a6c702
Revises: a1c0d2e3f401
Create Date: 2026-02-03

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7e4f5a6c702"
down_revision = "a1c0d2e3f401"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("cards", sa.Column("reserved_order_id", sa.String(length=64), nullable=True))
    op.add_column("cards", sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True))
    op.create_index("ix_cards_reserved_order_id", "cards", ["reserved_order_id"])

    op.execute("UPDATE cards SET is_used = false WHERE is_used IS NULL")
    op.alter_column("cards", "is_used", server_default=sa.text("false"))


def downgrade() -> None:
    op.alter_column("cards", "is_used", server_default=None)
    op.drop_index("ix_cards_reserved_order_id", table_name="cards")
    op.drop_column("cards", "reserved_at")
    op.drop_column("cards", "reserved_order_id")
