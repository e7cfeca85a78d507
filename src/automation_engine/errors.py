"""
Error taxonomy for the automation engine.

Failures inside a single action never escape the run pipeline; they are
captured into step logs and converted into a run-level error status.
"""


class AutomationError(Exception):
    """Base exception for all automation engine errors."""


class NotFoundError(AutomationError):
    """Raised for an unknown automation, action, table or record id."""


class ValidationError(AutomationError):
    """Raised when an action's parameters are malformed for its type."""


class ConditionEvaluationError(AutomationError):
    """Raised when a predicate tree has a malformed structure."""


class ActionExecutionError(AutomationError):
    """Raised for any action-type-specific failure.

    Covers transport failures, sandbox exceptions and sandbox timeouts.
    Console output captured before the failure travels with the error so it
    can be attached to the step log.
    """

    def __init__(self, message: str, console_output: list[str] | None = None) -> None:
        super().__init__(message)
        self.console_output = list(console_output or [])
