"""Coach appointments table using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from coach_assignment.models.base import metadata

coach_appointments = Table(
    "coach_appointments",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("coach_id", Text, ForeignKey("coaches.id"), nullable=False),
    Column("calendar_id", Text, ForeignKey("calendars.id"), nullable=False),
    Column("contact_id", Text, nullable=False),
    Column("contact_email", Text, nullable=True),
    Column("contact_name", Text, nullable=True),
    Column("title", Text, nullable=False),
    Column("notes", Text, nullable=True),
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("status", Text, nullable=False, server_default="scheduled"),
    Column("source", Text, nullable=False, server_default="api"),
    # External references recorded after commit
    Column("crm_contact_id", Text, nullable=True),
    Column("external_calendar_id", Text, nullable=True),
    # Inbound webhook bookkeeping
    Column("webhook_attempts", Integer, nullable=False, server_default=text("0")),
    Column("webhook_last_attempt", TIMESTAMP(timezone=True), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("cancelled_at", TIMESTAMP(timezone=True), nullable=True),
    Column("confirmed_at", TIMESTAMP(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('scheduled', 'cancelled', 'confirmed')",
        name="coach_appointments_status_check",
    ),
    CheckConstraint("end_time > start_time", name="coach_appointments_time_check"),
    # At most one live booking per coach and start time
    Index(
        "uq_coach_appointments_scheduled_slot",
        "coach_id",
        "start_time",
        unique=True,
        postgresql_where=text("status = 'scheduled'"),
    ),
    Index("idx_coach_appointments_coach_start", "coach_id", "start_time"),
    Index("idx_coach_appointments_status", "status"),
)
