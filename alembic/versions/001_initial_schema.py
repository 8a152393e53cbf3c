"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("birthday", sa.Date(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("location", sa.JSON(), nullable=False),
        sa.Column("birthday_month_day", sa.String(5), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_birthday_month_day", "users", ["birthday_month_day"])

    op.create_table(
        "delivery_markers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("last_delivered_date", sa.Date(), nullable=True),
        sa.Column("last_delivered_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("user_id", "event_type", name="uq_marker_user_event"),
    )
    op.create_index("ix_delivery_markers_user_id", "delivery_markers", ["user_id"])

    op.create_table(
        "queue_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("queue_name", sa.String(100), nullable=False),
        sa.Column("body", sa.JSON(), nullable=False),
        sa.Column("visible_at", sa.DateTime(), nullable=False),
        sa.Column("receive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("receipt_handle", sa.String(36), nullable=True),
        sa.Column("first_received_at", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        "ix_queue_messages_queue_visible", "queue_messages", ["queue_name", "visible_at"]
    )

    op.create_table(
        "dead_letters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("queue_name", sa.String(100), nullable=False),
        sa.Column("message_id", sa.String(36), nullable=False),
        sa.Column("body", sa.JSON(), nullable=False),
        sa.Column("receive_count", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.Column("dead_lettered_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_dead_letters_queue_name", "dead_letters", ["queue_name"])
    op.create_index("ix_dead_letters_dead_lettered_at", "dead_letters", ["dead_lettered_at"])

    op.create_table(
        "job_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("job_id", sa.String(100), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("ix_job_runs_job_id", "job_runs", ["job_id"])


def downgrade() -> None:
    op.drop_index("ix_job_runs_job_id", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_dead_letters_dead_lettered_at", table_name="dead_letters")
    op.drop_index("ix_dead_letters_queue_name", table_name="dead_letters")
    op.drop_table("dead_letters")
    op.drop_index("ix_queue_messages_queue_visible", table_name="queue_messages")
    op.drop_table("queue_messages")
    op.drop_index("ix_delivery_markers_user_id", table_name="delivery_markers")
    op.drop_table("delivery_markers")
    op.drop_index("ix_users_birthday_month_day", table_name="users")
    op.drop_table("users")
