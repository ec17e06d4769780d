"""create pending_subscription_changes table

Revision ID: e2b4d6f8a0c1
Revises: c7d9e1f3a5b2
Create Date: 2026-10-01 09:15:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "e2b4d6f8a0c1"
down_revision = "c7d9e1f3a5b2"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pending_subscription_changes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("subscription_id", sa.String(length=36), nullable=False),
        sa.Column("change_type", sa.String(length=20), nullable=False),
        sa.Column("timing", sa.String(length=20), nullable=False),
        sa.Column("new_subject_ids", sa.JSON(), nullable=False),
        sa.Column("new_subject_count", sa.Integer(), nullable=False),
        sa.Column("new_price", sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_pending_subscription_changes_user_id"),
        "pending_subscription_changes",
        ["user_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pending_subscription_changes_subscription_id"),
        "pending_subscription_changes",
        ["subscription_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pending_subscription_changes_status"),
        "pending_subscription_changes",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        op.f("ix_pending_subscription_changes_status"), table_name="pending_subscription_changes"
    )
    op.drop_index(
        op.f("ix_pending_subscription_changes_subscription_id"),
        table_name="pending_subscription_changes",
    )
    op.drop_index(
        op.f("ix_pending_subscription_changes_user_id"), table_name="pending_subscription_changes"
    )
    op.drop_table("pending_subscription_changes")
