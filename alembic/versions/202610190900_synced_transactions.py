"""synced transactions ledger

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "synced_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("household_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("merchant", sa.String(length=200)),
        sa.Column("primary_category", sa.String(length=100)),
        sa.Column("user_category", sa.String(length=100)),
        sa.Column(
            "is_reconciled", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("is_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reconciliation_note", sa.Text()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("external_id"),
    )
    op.create_index(
        "ix_synced_household_date", "synced_transactions", ["household_id", "date"]
    )
    op.create_index(
        "ix_synced_household_account_date",
        "synced_transactions",
        ["household_id", "account_id", "date"],
    )
    op.create_index(
        "ix_synced_household_reconciled",
        "synced_transactions",
        ["household_id", "is_reconciled"],
    )


def downgrade():
    op.drop_index("ix_synced_household_reconciled", table_name="synced_transactions")
    op.drop_index("ix_synced_household_account_date", table_name="synced_transactions")
    op.drop_index("ix_synced_household_date", table_name="synced_transactions")
    op.drop_table("synced_transactions")
