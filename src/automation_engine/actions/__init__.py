"""Action types, their parameters and the executor that runs them."""

from automation_engine.actions.executor import ActionExecutor, ActionOutcome
from automation_engine.actions.types import ActionType

__all__ = ["ActionExecutor", "ActionOutcome", "ActionType"]
