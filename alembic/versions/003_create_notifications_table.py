"""Create notifications ledger table.

Revision ID: 003
Revises: 002
Create Date: 2026-10-19 00:20:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create notifications table."""
    op.create_table(
        "notifications",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("user_id", postgresql.UUID(), nullable=True),
        sa.Column("appointment_id", postgresql.UUID(), nullable=True),
        sa.Column("notification_type", sa.VARCHAR(length=50), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.VARCHAR(length=20), server_default="pending", nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("dedup_key", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("sent_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("dedup_key", name="notifications_dedup_key_key"),
        sa.CheckConstraint(
            "notification_type IN ('appointment_reminder', 'account_deactivated')",
            name="notifications_type_check",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'sent', 'failed')",
            name="notifications_status_check",
        ),
    )

    op.create_index("idx_notifications_user_id", "notifications", ["user_id"])
    op.create_index("idx_notifications_appointment_id", "notifications", ["appointment_id"])
    op.create_index("idx_notifications_status", "notifications", ["status"])


def downgrade() -> None:
    """Drop notifications table."""
    op.drop_index("idx_notifications_status", table_name="notifications")
    op.drop_index("idx_notifications_appointment_id", table_name="notifications")
    op.drop_index("idx_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
