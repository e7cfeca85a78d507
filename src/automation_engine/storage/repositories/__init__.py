"""Repository classes for storage operations."""

from automation_engine.storage.repositories.actions import ActionsRepository
from automation_engine.storage.repositories.automations import AutomationsRepository
from automation_engine.storage.repositories.base import BaseRepository
from automation_engine.storage.repositories.execution_logs import (
    ExecutionLogsRepository,
)
from automation_engine.storage.repositories.records import RecordsRepository

__all__ = [
    "ActionsRepository",
    "AutomationsRepository",
    "BaseRepository",
    "ExecutionLogsRepository",
    "RecordsRepository",
]
