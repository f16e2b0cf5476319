"""order core schema

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("price", sa.Numeric(10, 2), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        )
        op.create_index("ix_products_id", "products", ["id"], unique=False)

    if not _table_exists(inspector, "orders"):
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
            sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
            sa.Column("user_id", sa.String(length=128), nullable=False),
            sa.Column("user_email", sa.String(length=255), nullable=False),
            sa.Column("items", sa.JSON(), nullable=False),
            sa.Column("subtotal", sa.Numeric(12, 4), nullable=False),
            sa.Column("tax", sa.Numeric(12, 4), nullable=False),
            sa.Column("shipping", sa.Numeric(12, 4), nullable=False),
            sa.Column("total", sa.Numeric(12, 4), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("payment_status", sa.String(length=20), nullable=False),
            sa.Column("stock_reserved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("request_hash", sa.String(length=64), nullable=False),
            sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
            sa.Column("gateway_signature", sa.String(length=128), nullable=True),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("captured_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("captured_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("failure_reason", sa.String(length=255), nullable=True),
            sa.Column("failure_code", sa.String(length=64), nullable=True),
            sa.Column("failure_description", sa.String(length=512), nullable=True),
            sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_orders_gateway_order_id", "orders", ["gateway_order_id"], unique=True)
        op.create_index("ix_orders_user_id", "orders", ["user_id"], unique=False)
        op.create_index("ix_orders_request_hash", "orders", ["request_hash"], unique=False)

    if not _table_exists(inspector, "idempotency_keys"):
        op.create_table(
            "idempotency_keys",
            sa.Column("request_hash", sa.String(length=64), primary_key=True, nullable=False),
            sa.Column("response", sa.Text(), nullable=False),
            sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_idempotency_keys_expires_at", "idempotency_keys", ["expires_at"], unique=False)

    if not _table_exists(inspector, "webhook_dead_letters"):
        op.create_table(
            "webhook_dead_letters",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("event", sa.String(length=64), nullable=False),
            sa.Column("gateway_order_id", sa.String(length=64), nullable=True),
            sa.Column("gateway_payment_id", sa.String(length=64), nullable=True),
            sa.Column("reason", sa.String(length=64), nullable=False),
            sa.Column("payload", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_webhook_dead_letters_id", "webhook_dead_letters", ["id"], unique=False)
        op.create_index(
            "ix_webhook_dead_letters_gateway_order_id",
            "webhook_dead_letters",
            ["gateway_order_id"],
            unique=False,
        )


def downgrade() -> None:
    op.drop_table("webhook_dead_letters")
    op.drop_table("idempotency_keys")
    op.drop_table("orders")
    op.drop_table("products")
