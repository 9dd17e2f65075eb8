"""Initial CRM schema.

- profiles
- role_permissions
- clients
- visits
- delivery_routes
- orders (sequential folio)
- order_items
- route_items
- goals
- tasks
- call_logs
- email_logs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "c41d9e2a7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _pk() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # Extensions
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    # Profiles
    op.create_table(
        "profiles",
        _pk(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), server_default="seller", nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        sa.Column("supervisor_id", sa.UUID(), nullable=True),
        sa.Column("hashed_password", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["supervisor_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
    )

    # Role permissions (role name -> permission code)
    op.create_table(
        "role_permissions",
        _pk(),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("permission", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("role", "permission", name="uq_role_permissions_role_permission"),
    )

    # Clients
    op.create_table(
        "clients",
        _pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("rut", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("comuna", sa.Text(), nullable=True),
        sa.Column("zone", sa.Text(), nullable=True),
        sa.Column("giro", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("purchase_contact", sa.Text(), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("rut", name="uq_clients_rut"),
    )
    op.create_index("ix_clients_created_by", "clients", ["created_by"])

    # Visits
    op.create_table(
        "visits",
        _pk(),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("sales_rep_id", sa.UUID(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("check_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_in_lat", sa.Float(), nullable=True),
        sa.Column("check_in_lng", sa.Float(), nullable=True),
        sa.Column("check_out_lat", sa.Float(), nullable=True),
        sa.Column("check_out_lng", sa.Float(), nullable=True),
        sa.Column("status", sa.Text(), server_default="in-progress", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sales_rep_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_visits_sales_rep_status", "visits", ["sales_rep_id", "status"])
    op.create_index("ix_visits_check_in_time", "visits", ["check_in_time"])

    # Delivery routes
    op.create_table(
        "delivery_routes",
        _pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("driver_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["driver_id"], ["profiles.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by"], ["profiles.id"], ondelete="SET NULL"),
    )

    # Orders / quotations
    op.create_table(
        "orders",
        _pk(),
        sa.Column("folio", sa.BigInteger(), sa.Identity(start=1), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("visit_id", sa.UUID(), nullable=True),
        sa.Column("route_id", sa.UUID(), nullable=True),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("delivery_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("order_date", sa.Date(), nullable=True),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("subtotal", sa.Float(), server_default="0", nullable=False),
        sa.Column("tax", sa.Float(), server_default="0", nullable=False),
        sa.Column("total_amount", sa.Float(), server_default="0", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["route_id"], ["delivery_routes.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("folio", name="uq_orders_folio"),
    )
    op.create_index("ix_orders_user_created", "orders", ["user_id", "created_at"])

    op.create_table(
        "order_items",
        _pk(),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("detail", sa.Text(), nullable=False),
        sa.Column("sub_detail", sa.Text(), nullable=True),
        sa.Column("qty", sa.Float(), nullable=False),
        sa.Column("unit", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("discount", sa.Float(), server_default="0", nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "route_items",
        _pk(),
        sa.Column("route_id", sa.UUID(), nullable=False),
        sa.Column("order_id", sa.UUID(), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["route_id"], ["delivery_routes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("route_id", "sequence_order", name="uq_route_items_route_sequence"),
    )

    # Goals, agenda and communications
    op.create_table(
        "goals",
        _pk(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("target_amount", sa.Float(), nullable=False),
        sa.Column("commission_rate", sa.Float(), server_default="0.01", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "year", "month", name="uq_goals_user_period"),
    )

    op.create_table(
        "tasks",
        _pk(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.Text(), server_default="medium", nullable=False),
        sa.Column("completed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "call_logs",
        _pk(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.Text(), server_default="completed", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "email_logs",
        _pk(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=True),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("snippet", sa.Text(), nullable=True),
        sa.Column("gmail_message_id", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
    )


def downgrade() -> None:
    # Drop tables in reverse dependency order
    op.drop_table("email_logs")
    op.drop_table("call_logs")
    op.drop_table("tasks")
    op.drop_table("goals")
    op.drop_table("route_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_user_created", table_name="orders")
    op.drop_table("orders")
    op.drop_table("delivery_routes")
    op.drop_index("ix_visits_check_in_time", table_name="visits")
    op.drop_index("ix_visits_sales_rep_status", table_name="visits")
    op.drop_table("visits")
    op.drop_index("ix_clients_created_by", table_name="clients")
    op.drop_table("clients")
    op.drop_table("role_permissions")
    op.drop_table("profiles")

    # Extensions are left installed (safe and idempotent); no drop needed.
