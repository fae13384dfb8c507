"""create_ledger_tables

Revision ID: 4c1f7a2e9b10
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "4c1f7a2e9b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("lifetime_credits", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
        sa.CheckConstraint(
            "lifetime_credits >= 0", name="ck_accounts_lifetime_non_negative"
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_accounts"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("credit_amount", sa.Integer(), nullable=False),
        sa.Column("credit_balance_after", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("actual_amount", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("idempotency_key", sa.String(200), nullable=True),
        sa.Column("order_id", sa.String(100), nullable=True),
        sa.Column("service_id", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["accounts.user_id"],
            name="fk_transactions_user_id_accounts",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sa.UniqueConstraint(
            "user_id",
            "idempotency_key",
            "type",
            name="uq_transactions_user_id_idempotency_key_type",
        ),
        sa.UniqueConstraint(
            "user_id", "sequence", name="uq_transactions_user_id_sequence"
        ),
    )
    op.create_index(
        "ix_transactions_user_created", "transactions", ["user_id", "created_at"]
    )

    op.create_table(
        "pending_orders",
        sa.Column("order_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("package_id", sa.String(50), nullable=False),
        sa.Column("order_name", sa.String(100), nullable=False),
        sa.Column("expected_amount", sa.Integer(), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("gateway_payment_id", sa.String(200), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["accounts.user_id"],
            name="fk_pending_orders_user_id_accounts",
        ),
        sa.PrimaryKeyConstraint("order_id", name="pk_pending_orders"),
    )
    op.create_index(
        "ix_pending_orders_user_id", "pending_orders", ["user_id"], unique=False
    )

    op.create_table(
        "reservations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("idempotency_key", sa.String(200), nullable=False),
        sa.Column("service_id", sa.String(100), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("debit_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("refund_transaction_id", sa.Uuid(), nullable=True),
        sa.Column("refund_attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_reservations"),
        sa.UniqueConstraint(
            "user_id",
            "idempotency_key",
            name="uq_reservations_user_id_idempotency_key",
        ),
    )
    op.create_index("ix_reservations_state", "reservations", ["state"], unique=False)

    op.create_table(
        "idempotency_records",
        sa.Column("key", sa.String(300), nullable=False),
        sa.Column("scope", sa.String(30), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("response", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("key", name="pk_idempotency_records"),
    )
    op.create_index(
        "ix_idempotency_records_user_id",
        "idempotency_records",
        ["user_id"],
        unique=False,
    )

    op.create_table(
        "admin_activity_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("admin_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_admin_activity_log"),
    )
    op.create_index(
        "ix_admin_activity_log_admin_id", "admin_activity_log", ["admin_id"]
    )
    op.create_index("ix_admin_activity_log_action", "admin_activity_log", ["action"])
    op.create_index(
        "ix_admin_activity_log_created_at", "admin_activity_log", ["created_at"]
    )


def downgrade() -> None:
    op.drop_table("admin_activity_log")
    op.drop_table("idempotency_records")
    op.drop_table("reservations")
    op.drop_table("pending_orders")
    op.drop_table("transactions")
    op.drop_table("accounts")
