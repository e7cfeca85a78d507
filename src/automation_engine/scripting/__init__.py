"""
Sandboxed script runtime for automation steps.
"""

from .config import ScriptConfig
from .engine import MontyEngine, ScriptResult
from .errors import (
    ScriptError,
    ScriptExecutionError,
    ScriptSyntaxError,
    ScriptTimeoutError,
)

__all__ = [
    "MontyEngine",
    "ScriptConfig",
    "ScriptError",
    "ScriptExecutionError",
    "ScriptResult",
    "ScriptSyntaxError",
    "ScriptTimeoutError",
]
