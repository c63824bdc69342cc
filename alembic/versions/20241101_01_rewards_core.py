"""Users, rewards ledger, rewards accounts and notifications.

Revision ID: 20241101_01
Revises:
Create Date: 2024-11-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20241101_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


entry_type_enum = sa.Enum("EARN", "SPEND", "ADJUSTMENT", name="rewards_ledger_entry_type")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.Column("city", sa.String(length=64), nullable=True),
        sa.Column("state", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="individual"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "rewards_ledger_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("entry_type", entry_type_enum, nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", "sequence", name="uq_rewards_ledger_entries_user_sequence"),
        sa.UniqueConstraint(
            "user_id", "idempotency_key", name="uq_rewards_ledger_entries_user_idempotency_key"
        ),
        sa.CheckConstraint("points <> 0", name="ck_rewards_ledger_entries_points_non_zero"),
    )
    op.create_index("ix_rewards_ledger_entries_user_id", "rewards_ledger_entries", ["user_id"])
    op.create_index(
        "ix_rewards_ledger_entries_user_type", "rewards_ledger_entries", ["user_id", "entry_type"]
    )

    op.create_table(
        "rewards_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("available_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.String(length=32), nullable=False),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_rewards_accounts_user_id"),
        sa.CheckConstraint("available_points >= 0", name="ck_rewards_accounts_available_non_negative"),
        sa.CheckConstraint(
            "available_points <= lifetime_points", name="ck_rewards_accounts_available_within_lifetime"
        ),
    )
    op.create_index("ix_rewards_accounts_lifetime_points", "rewards_accounts", ["lifetime_points"])

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_rewards_accounts_lifetime_points", table_name="rewards_accounts")
    op.drop_table("rewards_accounts")
    op.drop_index("ix_rewards_ledger_entries_user_type", table_name="rewards_ledger_entries")
    op.drop_index("ix_rewards_ledger_entries_user_id", table_name="rewards_ledger_entries")
    op.drop_table("rewards_ledger_entries")
    entry_type_enum.drop(op.get_bind(), checkfirst=True)
    op.drop_table("users")
