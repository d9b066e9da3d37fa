"""ERP foundation: one JSONB table per record kind, audit log and notifications.

Revision ID: 001_erp_foundation
Revises:
Create Date: 2026-10-17

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001_erp_foundation"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

# Debe coincidir con domain.repositories.RECORD_KINDS.
RECORD_TABLES: tuple[str, ...] = (
    "customers",
    "contacts",
    "sales_orders",
    "quotes",
    "invoices",
    "payments",
    "vendors",
    "purchase_orders",
    "receipts",
    "vendor_bills",
    "items",
    "warehouses",
    "stock_levels",
    "inventory_transactions",
    "accounts",
    "journal_entries",
    "fixed_assets",
    "depreciation_entries",
    "currencies",
    "exchange_rates",
    "employees",
    "time_off_requests",
    "boms",
    "work_orders",
    "qc_inspections",
    "support_cases",
    "case_comments",
    "subscriptions",
    "users",
    "roles",
    "custom_fields",
)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    for table in RECORD_TABLES:
        op.create_table(
            table,
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            # Número de documento / código / email normalizado (NULL = sin clave)
            sa.Column("business_key", sa.Text(), nullable=True, unique=True),
            sa.Column(
                "data",
                postgresql.JSONB(astext_type=sa.Text()),
                nullable=False,
                server_default=sa.text("'{}'::jsonb"),
            ),
            _timestamp("created_at"),
            _timestamp("updated_at"),
        )
        op.create_index(
            f"ix_{table}_data",
            table,
            ["data"],
            postgresql_using="gin",
            postgresql_ops={"data": "jsonb_path_ops"},
        )

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=False),
        sa.Column("old_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_value", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index(
        "ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"]
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column(
            "is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_notifications_user_unread", "notifications", ["user_id", "is_read"]
    )


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("audit_logs")
    for table in reversed(RECORD_TABLES):
        op.drop_table(table)
