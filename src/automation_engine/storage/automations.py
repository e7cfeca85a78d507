"""
Table definitions for automations and their ordered actions.
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


class TriggerType(str, Enum):
    """What causes an automation to run."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    CUSTOM = "custom"


automations_table = Table(
    "automations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("trigger_type", String(32), nullable=False, index=True),
    Column("trigger_config", JSONType, nullable=True),  # e.g. {"cron": "0 * * * *"}
    Column("trigger_label", String(255), nullable=True),
    Column("trigger_description", Text, nullable=True),
    # Restricts record-event triggers to one logical table; NULL means any table
    Column("table_name", String(255), nullable=True),
    Column("condition", JSONType, nullable=True),
    Column("enabled", Boolean, nullable=False, server_default="true"),
    Column("created_by", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("idx_automations_trigger_enabled", "trigger_type", "enabled"),
)


automation_actions_table = Table(
    "automation_actions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column(
        "automation_id",
        String(36),
        ForeignKey("automations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False, server_default="0"),
    Column("type", String(32), nullable=False),
    Column("params", JSONType, nullable=True),
    Column("condition", JSONType, nullable=True),
    # Insertion order within the automation, the tie-break for equal positions
    Column("seq", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_actions_automation_order", "automation_id", "position", "seq"),
)
