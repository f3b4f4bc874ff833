"""Initial schema for budgets, funding, allocations and payments."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20241019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _tombstone() -> list[sa.Column]:
    return [
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:  # noqa: D401
    """Create engine tables and constraints."""

    signature_kind = sa.Enum("PREPARED", "REVIEWED", "APPROVED", "BOOKED", name="signature_kind")
    signature_kind.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("base_currency", sa.String(length=3), nullable=False),
        sa.Column("quote_currency", sa.String(length=3), nullable=False),
        sa.Column("rate", sa.Numeric(18, 6), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=True),
        *_tombstone(),
        *_timestamps(),
        sa.CheckConstraint("rate > 0", name="ck_exchange_rates_rate_positive"),
    )
    op.create_index("ix_exchange_rates_pair", "exchange_rates", ["base_currency", "quote_currency"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("local_currency", sa.String(length=3), nullable=False),
        sa.Column(
            "local_to_gbp_rate_id",
            sa.String(length=36),
            sa.ForeignKey("exchange_rates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "local_to_sek_rate_id",
            sa.String(length=36),
            sa.ForeignKey("exchange_rates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "local_to_eur_rate_id",
            sa.String(length=36),
            sa.ForeignKey("exchange_rates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_tombstone(),
        *_timestamps(),
    )
    op.create_index("ix_budgets_project_id", "budgets", ["project_id"])

    op.create_table(
        "cost_details",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("budget_id", sa.String(length=36), sa.ForeignKey("budgets.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("cost_type", sa.String(length=128), nullable=True),
        sa.Column("units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(18, 3), nullable=False, server_default="0"),
        sa.Column("percentage_charging", sa.Numeric(6, 3), nullable=False, server_default="0"),
        sa.Column("amount_local", sa.Numeric(18, 3), nullable=True),
        sa.Column("amount_gbp", sa.Numeric(18, 3), nullable=True),
        sa.Column("amount_sek", sa.Numeric(18, 3), nullable=True),
        sa.Column("amount_eur", sa.Numeric(18, 3), nullable=True),
        *_tombstone(),
        *_timestamps(),
        sa.CheckConstraint("units >= 0", name="ck_cost_details_units_non_negative"),
        sa.CheckConstraint("unit_price >= 0", name="ck_cost_details_unit_price_non_negative"),
        sa.CheckConstraint("percentage_charging >= 0", name="ck_cost_details_percentage_non_negative"),
    )
    op.create_index("ix_cost_details_budget_id", "cost_details", ["budget_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("budget_id", sa.String(length=36), sa.ForeignKey("budgets.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("organization_id", sa.String(length=64), nullable=True),
        sa.Column("financier_organization_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=64), nullable=True),
        sa.Column("date_planned", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ok_status", sa.Boolean(), nullable=True),
        sa.Column("applied_for_amount", sa.Numeric(18, 3), nullable=True),
        sa.Column("approved_amount", sa.Numeric(18, 3), nullable=True),
        sa.Column("first_share_amount", sa.Numeric(18, 3), nullable=True),
        sa.Column("second_share_amount", sa.Numeric(18, 3), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_tombstone(),
        *_timestamps(),
    )
    op.create_index("ix_transactions_project_id", "transactions", ["project_id"])
    op.create_index("ix_transactions_budget_id", "transactions", ["budget_id"])

    op.create_table(
        "cost_allocations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.String(length=36),
            sa.ForeignKey("transactions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "cost_detail_id",
            sa.String(length=36),
            sa.ForeignKey("cost_details.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("planned_amount", sa.Numeric(18, 3), nullable=False, server_default="0"),
        sa.Column("note", sa.String(length=255), nullable=True),
        *_tombstone(),
        *_timestamps(),
        sa.CheckConstraint("planned_amount >= 0", name="ck_cost_allocations_planned_non_negative"),
    )
    op.create_index("ix_cost_allocations_pair", "cost_allocations", ["transaction_id", "cost_detail_id"])
    op.create_index("ix_cost_allocations_cost_detail_id", "cost_allocations", ["cost_detail_id"])

    op.create_table(
        "payment_orders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.String(length=36),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("payment_order_date", sa.Date(), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("message", sa.String(length=255), nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 3), nullable=False, server_default="0"),
        sa.Column("number_of_lines", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_tombstone(),
        *_timestamps(),
    )
    op.create_index("ix_payment_orders_transaction_id", "payment_orders", ["transaction_id"])

    op.create_table(
        "payment_order_lines",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "payment_order_id",
            sa.String(length=36),
            sa.ForeignKey("payment_orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "transaction_id",
            sa.String(length=36),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("organization_id", sa.String(length=64), nullable=False),
        sa.Column(
            "cost_detail_id",
            sa.String(length=36),
            sa.ForeignKey("cost_details.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("amount", sa.Numeric(18, 3), nullable=False),
        sa.Column("memo", sa.String(length=255), nullable=True),
        *_tombstone(),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_payment_order_lines_amount_positive"),
    )
    op.create_index("ix_payment_order_lines_payment_order_id", "payment_order_lines", ["payment_order_id"])
    op.create_index("ix_payment_order_lines_cost_detail_id", "payment_order_lines", ["cost_detail_id"])

    op.create_table(
        "signatures",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "payment_order_id",
            sa.String(length=36),
            sa.ForeignKey("payment_orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status_kind", signature_kind, nullable=False),
        sa.Column("signed_by", sa.String(length=128), nullable=True),
        sa.Column("signature", sa.String(length=255), nullable=True),
        sa.Column("signature_date", sa.Date(), nullable=True),
        *_tombstone(),
        *_timestamps(),
    )
    op.create_index("ix_signatures_payment_order_id", "signatures", ["payment_order_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("project_id", sa.String(length=64), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("resource_type", sa.String(length=128), nullable=False),
        sa.Column("resource_id", sa.String(length=128), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_project_id", "audit_logs", ["project_id"])
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])


def downgrade() -> None:  # noqa: D401
    """Drop engine tables."""

    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_index("ix_audit_logs_project_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_signatures_payment_order_id", table_name="signatures")
    op.drop_table("signatures")

    op.drop_index("ix_payment_order_lines_cost_detail_id", table_name="payment_order_lines")
    op.drop_index("ix_payment_order_lines_payment_order_id", table_name="payment_order_lines")
    op.drop_table("payment_order_lines")

    op.drop_index("ix_payment_orders_transaction_id", table_name="payment_orders")
    op.drop_table("payment_orders")

    op.drop_index("ix_cost_allocations_cost_detail_id", table_name="cost_allocations")
    op.drop_index("ix_cost_allocations_pair", table_name="cost_allocations")
    op.drop_table("cost_allocations")

    op.drop_index("ix_transactions_budget_id", table_name="transactions")
    op.drop_index("ix_transactions_project_id", table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("ix_cost_details_budget_id", table_name="cost_details")
    op.drop_table("cost_details")

    op.drop_index("ix_budgets_project_id", table_name="budgets")
    op.drop_table("budgets")

    op.drop_index("ix_exchange_rates_pair", table_name="exchange_rates")
    op.drop_table("exchange_rates")

    op.drop_table("projects")

    _drop_enum("signature_kind")
