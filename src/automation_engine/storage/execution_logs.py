"""
Table definitions for the run audit trail.
"""

from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)

from automation_engine.storage.base import JSONType, metadata


class RunStatus(str, Enum):
    """Outcome of a run or of a single step."""

    SUCCESS = "success"
    ERROR = "error"


execution_logs_table = Table(
    "automation_execution_logs",
    metadata,
    Column("id", String(36), primary_key=True),
    # No foreign key: logs outlive the automation they describe
    Column("automation_id", String(36), nullable=False, index=True),
    Column("event_data", JSONType, nullable=True),
    Column("status", String(16), nullable=False, server_default="success"),
    Column("result", JSONType, nullable=True),
    Column("error", Text, nullable=True),
    Column("is_test", Boolean, nullable=False, server_default="false"),
    Column("executed_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True), nullable=True),
    Index("idx_execution_logs_automation_time", "automation_id", "executed_at"),
)


action_execution_logs_table = Table(
    "automation_action_execution_logs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "execution_id",
        String(36),
        ForeignKey("automation_execution_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("action_id", String(36), nullable=False),
    Column("status", String(16), nullable=False),
    Column("result", JSONType, nullable=True),
    Column("error", Text, nullable=True),
    Column("console_output", JSONType, nullable=True),
    Column("seq", Integer, nullable=False),  # Write order within the execution
    Column("created_at", DateTime(timezone=True), nullable=False),
)
