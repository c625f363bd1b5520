"""add checkouts

Revision ID: c91f3a06be52
Revises: 5b2e81c4d7a0
Create Date: 2026-10-18 11:40:12.907514
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c91f3a06be52'
down_revision: Union[str, Sequence[str], None] = '5b2e81c4d7a0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

checkout_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED', 'EXPIRED', name='checkout_status')


def upgrade() -> None:
    """Upgrade schema: checkouts (заказы в ожидании оплаты) и их позиции."""
    op.create_table(
        "checkouts",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", checkout_status, nullable=False, server_default="PENDING"),
        sa.Column("total_price", sa.Integer, nullable=False),
        sa.Column("pickup_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("external_reference", sa.String(64), nullable=False),
        sa.Column("preference_id", sa.String(128), nullable=True),
        sa.Column("redirect_url", sa.String(1024), nullable=True),
        sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_checkouts_external_reference", "checkouts", ["external_reference"], unique=True)

    op.create_table(
        "checkout_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("checkout_id", sa.Integer, sa.ForeignKey("checkouts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Integer, nullable=False),
        sa.Column("side_id", sa.Integer, sa.ForeignKey("sides.id"), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_checkout_items_quantity_positive"),
    )


def downgrade() -> None:
    """Downgrade schema: remove checkouts."""
    op.drop_table("checkout_items")
    op.drop_index("ix_checkouts_external_reference", table_name="checkouts")
    op.drop_table("checkouts")
    checkout_status.drop(op.get_bind(), checkfirst=True)
