"""create sales tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _user_ref(name: str) -> sa.Column:
    return sa.Column(name, sa.Uuid(), sa.ForeignKey("users.id"), nullable=True)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="User"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("lead_source", sa.String(length=64), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=True),
        sa.Column("next_follow_up_date", sa.Date(), nullable=True),
        sa.Column("revenue_generated", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("cash_collected", sa.Numeric(14, 2), nullable=False, server_default="0"),
        _user_ref("assigned_to"),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_leads_owner", "leads", ["created_by", "assigned_to"], unique=False)

    op.create_table(
        "deals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), sa.ForeignKey("leads.id", ondelete="SET NULL"), nullable=True),
        sa.Column("deal_name", sa.Text(), nullable=False),
        sa.Column("deal_value", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("stage", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("service_type", sa.String(length=64), nullable=True),
        sa.Column("deal_source", sa.String(length=64), nullable=True),
        sa.Column("probability", sa.Integer(), nullable=True),
        sa.Column("expected_close_date", sa.Date(), nullable=True),
        sa.Column("actual_close_date", sa.DateTime(timezone=True), nullable=True),
        _user_ref("deal_owner"),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deals_owner", "deals", ["created_by", "deal_owner"], unique=False)

    op.create_table(
        "proposals",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("deal_id", sa.Uuid(), sa.ForeignKey("deals.id", ondelete="CASCADE"), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("proposal_value", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("proposal_link", sa.Text(), nullable=True),
        sa.Column("sent_date", sa.Date(), nullable=True),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        _user_ref("assigned_to"),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_proposals_deal_id", "proposals", ["deal_id"], unique=False)

    op.create_table(
        "closer_reports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("closer_name", sa.Text(), nullable=False),
        sa.Column("calls_taken", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deals_closed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("revenue_generated", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("cash_collected", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_ref("submitted_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "setter_reports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("setter_name", sa.Text(), nullable=False),
        sa.Column("outbound_calls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("appointments_set", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        _user_ref("submitted_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "offers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=True),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "cash_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("client_email", sa.Text(), nullable=True),
        sa.Column("income", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("gross_profit", sa.Numeric(14, 2), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("payment_type", sa.String(length=32), nullable=True),
        _user_ref("setter_id"),
        sa.Column("offer_id", sa.Uuid(), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("expense_type", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("vendor", sa.Text(), nullable=True),
        sa.Column("invoice_filed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _user_ref("created_by"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("expenses")
    op.drop_table("cash_entries")
    op.drop_table("offers")
    op.drop_table("setter_reports")
    op.drop_table("closer_reports")
    op.drop_index("ix_proposals_deal_id", table_name="proposals")
    op.drop_table("proposals")
    op.drop_index("ix_deals_owner", table_name="deals")
    op.drop_table("deals")
    op.drop_index("ix_leads_owner", table_name="leads")
    op.drop_table("leads")
    op.drop_table("users")
