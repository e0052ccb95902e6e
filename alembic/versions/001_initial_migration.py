"""Initial migration - create coach scheduling tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False, now: bool = True) -> sa.Column:
    return sa.Column(
        name,
        postgresql.TIMESTAMP(timezone=True),
        server_default=sa.text("NOW()") if now else None,
        nullable=nullable,
    )


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "coaches",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("score", sa.Numeric(10, 4), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "max_daily_appointments", sa.Integer(), server_default=sa.text("8"), nullable=False
        ),
        sa.Column(
            "working_hours_start", sa.Time(), server_default=sa.text("'09:00'"), nullable=False
        ),
        sa.Column(
            "working_hours_end", sa.Time(), server_default=sa.text("'17:00'"), nullable=False
        ),
        sa.Column("timezone", sa.Text(), server_default="UTC", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("max_daily_appointments >= 0", name="coaches_max_daily_check"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "calendars",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slot_duration", sa.Integer(), server_default=sa.text("30"), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint("slot_duration > 0", name="calendars_slot_duration_check"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "coach_calendars",
        sa.Column("coach_id", sa.Text(), nullable=False),
        sa.Column("calendar_id", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["calendar_id"], ["calendars.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("coach_id", "calendar_id"),
    )
    op.create_index("idx_coach_calendars_calendar", "coach_calendars", ["calendar_id"])

    op.create_table(
        "coach_slots",
        sa.Column("coach_id", sa.Text(), nullable=False),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("coach_id", "start_time", name="coach_slots_coach_start_key"),
    )
    op.create_index(
        "idx_coach_slots_start_available", "coach_slots", ["start_time", "available"]
    )

    op.create_table(
        "coach_appointments",
        sa.Column("id", postgresql.UUID(), nullable=False),
        sa.Column("coach_id", sa.Text(), nullable=False),
        sa.Column("calendar_id", sa.Text(), nullable=False),
        sa.Column("contact_id", sa.Text(), nullable=False),
        sa.Column("contact_email", sa.Text(), nullable=True),
        sa.Column("contact_name", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("start_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("end_time", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", sa.Text(), server_default="scheduled", nullable=False),
        sa.Column("source", sa.Text(), server_default="api", nullable=False),
        sa.Column("crm_contact_id", sa.Text(), nullable=True),
        sa.Column("external_calendar_id", sa.Text(), nullable=True),
        sa.Column("webhook_attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("webhook_last_attempt", nullable=True, now=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("cancelled_at", nullable=True, now=False),
        _timestamp("confirmed_at", nullable=True, now=False),
        sa.CheckConstraint(
            "status IN ('scheduled', 'cancelled', 'confirmed')",
            name="coach_appointments_status_check",
        ),
        sa.CheckConstraint("end_time > start_time", name="coach_appointments_time_check"),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.ForeignKeyConstraint(["calendar_id"], ["calendars.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_coach_appointments_scheduled_slot",
        "coach_appointments",
        ["coach_id", "start_time"],
        unique=True,
        postgresql_where=sa.text("status = 'scheduled'"),
    )
    op.create_index(
        "idx_coach_appointments_coach_start", "coach_appointments", ["coach_id", "start_time"]
    )
    op.create_index("idx_coach_appointments_status", "coach_appointments", ["status"])

    op.create_table(
        "distribution_log",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("appointment_id", postgresql.UUID(), nullable=False),
        sa.Column("coaches_considered", postgresql.JSONB(), nullable=False),
        sa.Column("selected_coach_id", sa.Text(), nullable=False),
        sa.Column("selection_reason", sa.Text(), nullable=False),
        sa.Column("distribution_score", sa.Float(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_distribution_log_selected_coach", "distribution_log", ["selected_coach_id"]
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", postgresql.UUID(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("event_source", sa.Text(), server_default="webhook", nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("1"), nullable=False),
        _timestamp("last_attempt", nullable=True, now=False),
        _timestamp("processed_at", nullable=True, now=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_webhook_events_type", "webhook_events", ["event_type"])

    op.create_table(
        "api_keys",
        sa.Column("key_hash", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("rate_limit", sa.Integer(), server_default=sa.text("60"), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("key_hash"),
        sa.UniqueConstraint("name"),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table("api_keys")
    op.drop_index("idx_webhook_events_type", table_name="webhook_events")
    op.drop_table("webhook_events")
    op.drop_index("idx_distribution_log_selected_coach", table_name="distribution_log")
    op.drop_table("distribution_log")
    op.drop_index("idx_coach_appointments_status", table_name="coach_appointments")
    op.drop_index("idx_coach_appointments_coach_start", table_name="coach_appointments")
    op.drop_index("uq_coach_appointments_scheduled_slot", table_name="coach_appointments")
    op.drop_table("coach_appointments")
    op.drop_index("idx_coach_slots_start_available", table_name="coach_slots")
    op.drop_table("coach_slots")
    op.drop_index("idx_coach_calendars_calendar", table_name="coach_calendars")
    op.drop_table("coach_calendars")
    op.drop_table("calendars")
    op.drop_table("coaches")
