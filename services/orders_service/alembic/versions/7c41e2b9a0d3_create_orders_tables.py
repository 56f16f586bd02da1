"""create orders tables

Revision ID: 7c41e2b9a0d3
Revises:
Create Date: 2026-10-19 09:12:41.208331
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "7c41e2b9a0d3"
down_revision = None
branch_labels = None
depends_on = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

order_status_enum = sa.Enum(
    "PENDING", "COMPLETED", "CANCELED", name="pp_order_status_enum"
)
payment_status_enum = sa.Enum(
    "pending", "succeeded", "failed", name="pp_payment_status_enum"
)
log_level_enum = sa.Enum("INFO", "WARNING", "ERROR", name="pp_log_level_enum")


def upgrade() -> None:
    op.create_table(
        "pp_products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("default_color", sa.String(length=50), nullable=True),
        sa.Column("default_size", sa.String(length=20), nullable=True),
        sa.Column("default_print_area", sa.String(length=50), nullable=False),
        sa.Column("default_sizing", sa.String(length=30), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pp_products_sku", "pp_products", ["sku"])

    op.create_table(
        "pp_orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prodigi_order_id", sa.String(length=64), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", order_status_enum, nullable=False),
        sa.Column("shipping_method", sa.String(length=20), nullable=False),
        sa.Column("merchant_reference", sa.String(length=100), nullable=True),
        sa.Column("order_token", sa.String(length=64), nullable=True),
        sa.Column("prodigi_stage", sa.String(length=32), nullable=True),
        sa.Column("prodigi_outcome", sa.String(length=32), nullable=True),
        sa.Column("prodigi_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("available_actions", json_type, nullable=True),
        sa.Column("last_action_check", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pp_orders_prodigi_order_id", "pp_orders", ["prodigi_order_id"], unique=True
    )
    op.create_index(
        "ix_pp_orders_order_token", "pp_orders", ["order_token"], unique=True
    )

    op.create_table(
        "pp_recipients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("address_line1", sa.String(length=255), nullable=False),
        sa.Column("address_line2", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=False),
        sa.Column("country_code", sa.String(length=2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )
    op.create_index("ix_pp_recipients_email", "pp_recipients", ["email"])

    op.create_table(
        "pp_order_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("copies", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("attributes", json_type, nullable=True),
        sa.Column("assets", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["pp_products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pp_order_items_order_id", "pp_order_items", ["order_id"])

    op.create_table(
        "pp_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_transaction_id", sa.String(length=128), nullable=False),
        sa.Column("status", payment_status_enum, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pp_payments_order_id", "pp_payments", ["order_id"])
    op.create_index(
        "ix_pp_payments_provider_transaction_id",
        "pp_payments",
        ["provider_transaction_id"],
        unique=True,
    )

    op.create_table(
        "pp_shipments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("prodigi_shipment_id", sa.String(length=64), nullable=False),
        sa.Column("carrier", sa.String(length=100), nullable=False),
        sa.Column("service", sa.String(length=100), nullable=False),
        sa.Column("tracking_number", sa.String(length=100), nullable=True),
        sa.Column("tracking_url", sa.Text(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("items", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prodigi_shipment_id"),
    )
    op.create_index("ix_pp_shipments_order_id", "pp_shipments", ["order_id"])

    op.create_table(
        "pp_order_processing_errors",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("error", sa.Text(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("last_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pp_order_processing_errors_order_id",
        "pp_order_processing_errors",
        ["order_id"],
    )

    op.create_table(
        "pp_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("level", log_level_enum, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pp_logs_created_at", "pp_logs", ["created_at"])

    op.create_table(
        "pp_order_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("event_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=255), nullable=False),
        sa.Column("stage", sa.String(length=32), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", json_type, nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_pp_order_events_order_id_recorded_at",
        "pp_order_events",
        ["order_id", "recorded_at"],
    )

    op.create_table(
        "pp_processed_webhook_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("event_id", sa.String(length=128), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["pp_orders.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "provider", "event_id", name="uq_pp_webhook_provider_event"
        ),
    )


def downgrade() -> None:
    op.drop_table("pp_processed_webhook_events")
    op.drop_index(
        "ix_pp_order_events_order_id_recorded_at", table_name="pp_order_events"
    )
    op.drop_table("pp_order_events")
    op.drop_index("ix_pp_logs_created_at", table_name="pp_logs")
    op.drop_table("pp_logs")
    op.drop_index(
        "ix_pp_order_processing_errors_order_id",
        table_name="pp_order_processing_errors",
    )
    op.drop_table("pp_order_processing_errors")
    op.drop_index("ix_pp_shipments_order_id", table_name="pp_shipments")
    op.drop_table("pp_shipments")
    op.drop_index("ix_pp_payments_provider_transaction_id", table_name="pp_payments")
    op.drop_index("ix_pp_payments_order_id", table_name="pp_payments")
    op.drop_table("pp_payments")
    op.drop_index("ix_pp_order_items_order_id", table_name="pp_order_items")
    op.drop_table("pp_order_items")
    op.drop_index("ix_pp_recipients_email", table_name="pp_recipients")
    op.drop_table("pp_recipients")
    op.drop_index("ix_pp_orders_order_token", table_name="pp_orders")
    op.drop_index("ix_pp_orders_prodigi_order_id", table_name="pp_orders")
    op.drop_table("pp_orders")
    op.drop_index("ix_pp_products_sku", table_name="pp_products")
    op.drop_table("pp_products")

    log_level_enum.drop(op.get_bind(), checkfirst=True)
    payment_status_enum.drop(op.get_bind(), checkfirst=True)
    order_status_enum.drop(op.get_bind(), checkfirst=True)
