"""Append-only audit trail of coach selection decisions."""

from sqlalchemy import BigInteger, Column, Float, Index, Table, Text, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

from coach_assignment.models.base import metadata

distribution_log = Table(
    "distribution_log",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=True),
    Column("appointment_id", UUID(as_uuid=True), nullable=False),
    Column("coaches_considered", JSONB, nullable=False),
    Column("selected_coach_id", Text, nullable=False),
    Column("selection_reason", Text, nullable=False),
    Column("distribution_score", Float, nullable=False),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Index("idx_distribution_log_selected_coach", "selected_coach_id"),
)
