"""
Custom exceptions for the script sandbox.
"""


class ScriptError(Exception):
    """Base exception for all scripting-related errors."""

    def __init__(self, message: str, console_output: list[str] | None = None) -> None:
        super().__init__(message)
        self.console_output = list(console_output or [])


class ScriptSyntaxError(ScriptError):
    """Raised when a script cannot be parsed."""

    def __init__(
        self,
        message: str,
        line: int | None = None,
        console_output: list[str] | None = None,
    ) -> None:
        super().__init__(message, console_output)
        self.line = line


class ScriptExecutionError(ScriptError):
    """Raised when a script is missing or fails while running."""


class ScriptTimeoutError(ScriptError):
    """Raised when a script execution exceeds the allowed time limit."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float,
        console_output: list[str] | None = None,
    ) -> None:
        super().__init__(message, console_output)
        self.timeout_seconds = timeout_seconds
