"""create user_subjects table

Revision ID: 8a4e6b2c1f37
Revises: 3f1c2a9b7d10
Create Date: 2026-10-01 09:05:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "8a4e6b2c1f37"
down_revision = "3f1c2a9b7d10"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_subjects",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "subject_id", name="uq_user_subjects_user_subject"),
    )
    op.create_index(op.f("ix_user_subjects_user_id"), "user_subjects", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_user_subjects_subject_id"), "user_subjects", ["subject_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_user_subjects_subject_id"), table_name="user_subjects")
    op.drop_index(op.f("ix_user_subjects_user_id"), table_name="user_subjects")
    op.drop_table("user_subjects")
