"""add cancellation feedback to user_subscriptions

Revision ID: add_cancellation_feedback
Revises: 0001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "add_cancellation_feedback"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "user_subscriptions",
        sa.Column("cancellation_feedback", sa.String(), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("user_subscriptions", "cancellation_feedback")
