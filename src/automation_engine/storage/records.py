"""
Table definitions for the logical tables and records that scripts and
record actions operate on.
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, Table

from automation_engine.storage.base import JSONType, metadata

table_definitions_table = Table(
    "table_definitions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


table_records_table = Table(
    "table_records",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "table_id",
        String(36),
        ForeignKey("table_definitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("data", JSONType, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)
