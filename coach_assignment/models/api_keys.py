"""API key table; read at startup for rate limit configuration."""

from sqlalchemy import Boolean, Column, Integer, Table, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from coach_assignment.models.base import metadata

api_keys = Table(
    "api_keys",
    metadata,
    Column("key_hash", Text, primary_key=True),
    Column("name", Text, nullable=False, unique=True),
    # Requests per minute
    Column("rate_limit", Integer, nullable=False, server_default=text("60")),
    Column("active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
)
