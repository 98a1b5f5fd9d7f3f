"""create_video_and_credit_tables

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-19 09:12:44.120311

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, video_tasks, credit_accounts and credit_transactions."""
    op.create_table(
        "users",
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("photo_url", sa.String(), nullable=False),
        sa.Column("super_admin", sa.Boolean(), nullable=False),
        sa.Column("entitlements", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("uid"),
    )

    op.create_table(
        "video_tasks",
        sa.Column("video_id", sa.String(length=255), nullable=False),
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("video_url", sa.String(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("script", sa.String(), nullable=True),
        sa.Column("avatar_id", sa.String(length=255), nullable=True),
        sa.Column("voice_id", sa.String(length=255), nullable=True),
        sa.Column("error_code", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("error_detail", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("video_id"),
    )
    op.create_index("ix_video_tasks_uid", "video_tasks", ["uid"])

    op.create_table(
        "credit_accounts",
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("gift_credit", sa.Integer(), nullable=False),
        sa.Column("paid_credit", sa.Integer(), nullable=False),
        sa.Column("last_gift_reset", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("gift_credit >= 0", name="ck_credit_accounts_gift_non_negative"),
        sa.CheckConstraint("paid_credit >= 0", name="ck_credit_accounts_paid_non_negative"),
        sa.PrimaryKeyConstraint("uid"),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("uid", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.Enum("GIFT", "PAID", name="creditkind"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=100), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("purchase_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_id"),
    )
    op.create_index("ix_credit_transactions_uid", "credit_transactions", ["uid"])


def downgrade() -> None:
    """Drop all tables created in upgrade()."""
    op.drop_index("ix_credit_transactions_uid", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("credit_accounts")
    op.drop_index("ix_video_tasks_uid", table_name="video_tasks")
    op.drop_table("video_tasks")
    op.drop_table("users")
    sa.Enum(name="creditkind").drop(op.get_bind(), checkfirst=True)
