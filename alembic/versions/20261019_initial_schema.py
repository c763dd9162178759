# alembic/versions/20261019_initial_schema.py
"""initial schema: orders, order items, printers, sales, clients, products, tenant settings"""
import sqlalchemy as sa

from alembic import op
from printhub.models.types import JSONBCompat

revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUS = sa.Enum("pending", "in_progress", "completed", "delivered", "cancelled", name="order_status")
PRINTER_STATUS = sa.Enum("idle", "printing", "maintenance", name="printer_status")


def upgrade():
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("tracking_code", sa.String(32), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("customer_contact", sa.String(64)),
        sa.Column("origin", sa.String(64), nullable=False),
        sa.Column("payment_method", sa.String(64), nullable=False),
        sa.Column("deposit", sa.Numeric(14, 2), nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("files", JSONBCompat(), nullable=False),
        sa.Column("due_date", sa.DateTime),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("profit", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", ORDER_STATUS, nullable=False),
        sa.Column("printer_id", sa.Integer),
        sa.Column("print_time_minutes", sa.Integer),
        sa.Column("started_at", sa.DateTime),
        sa.Column("finished_at", sa.DateTime),
        sa.Column("delivered_at", sa.DateTime),
        sa.Column("cancelled_at", sa.DateTime),
        sa.Column("admin_notified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_sale_registered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("customer_satisfaction", sa.Integer),
        sa.Column("customer_feedback", sa.Text),
        sa.CheckConstraint("total >= 0", name="ck__orders__order_total_non_negative"),
        sa.CheckConstraint(
            "customer_satisfaction IS NULL OR (customer_satisfaction BETWEEN 1 AND 5)",
            name="ck__orders__order_satisfaction_range",
        ),
    )
    op.create_index("ix__orders__tracking_code", "orders", ["tracking_code"], unique=True)
    op.create_index("ix__orders__tenant_id", "orders", ["tenant_id"])
    op.create_index("ix__orders__status", "orders", ["status"])
    op.create_index("ix__orders__created_at", "orders", ["created_at"])
    op.create_index("ix_orders_tenant_status", "orders", ["tenant_id", "status"])
    op.create_index("ix_orders_tenant_created", "orders", ["tenant_id", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "order_id",
            sa.Integer,
            sa.ForeignKey("orders.id", ondelete="CASCADE", name="fk__order_items__order_id__orders"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("product_id", sa.Integer),
        sa.Column("product_name", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_custom", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.CheckConstraint("quantity > 0", name="ck__order_items__order_item_quantity_positive"),
        sa.CheckConstraint(
            "unit_price >= 0 AND unit_cost >= 0", name="ck__order_items__order_item_amounts_non_negative"
        ),
    )
    op.create_index("ix__order_items__order_id", "order_items", ["order_id"])
    op.create_index("ix__order_items__product_id", "order_items", ["product_id"])

    op.create_table(
        "printers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("model", sa.String(128), nullable=False),
        sa.Column("status", PRINTER_STATUS, nullable=False),
        sa.Column(
            "current_order_id",
            sa.Integer,
            sa.ForeignKey("orders.id", ondelete="SET NULL", name="fk__printers__current_order_id__orders"),
        ),
        sa.CheckConstraint(
            "(status = 'printing' AND current_order_id IS NOT NULL) "
            "OR (status <> 'printing' AND current_order_id IS NULL)",
            name="ck__printers__printer_occupant_matches_status",
        ),
        sa.UniqueConstraint("current_order_id", name="uq_printers_current_order"),
    )
    op.create_index("ix__printers__tenant_id", "printers", ["tenant_id"])
    op.create_index("ix__printers__status", "printers", ["status"])

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column(
            "order_id",
            sa.Integer,
            sa.ForeignKey("orders.id", ondelete="RESTRICT", name="fk__sales__order_id__orders"),
            nullable=False,
        ),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("profit", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.UniqueConstraint("order_id", name="uq__sales__order_id"),
    )
    op.create_index("ix__sales__tenant_id", "sales", ["tenant_id"])
    op.create_index("ix__sales__created_at", "sales", ["created_at"])

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("source", sa.String(64)),
        sa.Column("total_spent", sa.Numeric(14, 2), nullable=False),
        sa.Column("order_count", sa.Integer, nullable=False),
        sa.Column("last_order_date", sa.DateTime),
        sa.UniqueConstraint("tenant_id", "name", name="uq_clients_tenant_name"),
    )
    op.create_index("ix__clients__tenant_id", "clients", ["tenant_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False),
    )
    op.create_index("ix__products__tenant_id", "products", ["tenant_id"])

    op.create_table(
        "tenant_settings",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("business_name", sa.String(255)),
        sa.Column("admin_phone", sa.String(32)),
        sa.Column("currency_symbol", sa.String(8), nullable=False),
        sa.Column("tracking_base_url", sa.String(512)),
        sa.Column("customer_message_templates", JSONBCompat(), nullable=False),
        sa.UniqueConstraint("tenant_id", name="uq__tenant_settings__tenant_id"),
    )


def downgrade():
    op.drop_table("tenant_settings")
    op.drop_table("products")
    op.drop_table("clients")
    op.drop_table("sales")
    op.drop_table("printers")
    op.drop_table("order_items")
    op.drop_table("orders")
    PRINTER_STATUS.drop(op.get_bind(), checkfirst=True)
    ORDER_STATUS.drop(op.get_bind(), checkfirst=True)
