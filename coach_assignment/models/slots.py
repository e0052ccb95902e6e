"""Coach slot table using SQLAlchemy Core."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Table, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from coach_assignment.models.base import metadata

coach_slots = Table(
    "coach_slots",
    metadata,
    Column(
        "coach_id",
        Text,
        ForeignKey("coaches.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Always UTC, truncated to the minute, on the 15 minute grid
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("available", Boolean, nullable=False, server_default=text("true")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    UniqueConstraint("coach_id", "start_time", name="coach_slots_coach_start_key"),
    Index("idx_coach_slots_start_available", "start_time", "available"),
)
