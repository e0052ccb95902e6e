"""Coach and calendar tables using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Table,
    Text,
    Time,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

from coach_assignment.models.base import metadata

coaches = Table(
    "coaches",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("email", Text, nullable=False),
    # Fitness score used to rank eligible coaches
    Column("score", Numeric(10, 4), nullable=False, server_default=text("0")),
    Column("max_daily_appointments", Integer, nullable=False, server_default=text("8")),
    # Local wall-clock working window, interpreted in the coach timezone
    Column("working_hours_start", Time, nullable=False, server_default=text("'09:00'")),
    Column("working_hours_end", Time, nullable=False, server_default=text("'17:00'")),
    Column("timezone", Text, nullable=False, server_default="UTC"),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint("max_daily_appointments >= 0", name="coaches_max_daily_check"),
)

calendars = Table(
    "calendars",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    # Minutes per booked appointment
    Column("slot_duration", Integer, nullable=False, server_default=text("30")),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint("slot_duration > 0", name="calendars_slot_duration_check"),
)

coach_calendars = Table(
    "coach_calendars",
    metadata,
    Column(
        "coach_id",
        Text,
        ForeignKey("coaches.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "calendar_id",
        Text,
        ForeignKey("calendars.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("idx_coach_calendars_calendar", "calendar_id"),
)
