"""Configuration for the script sandbox."""

from dataclasses import dataclass


@dataclass
class ScriptConfig:
    """Configuration for the script sandbox."""

    max_execution_time: float = 30.0  # Wall-clock deadline per script step, seconds
    max_memory_bytes: int = 256 * 1024 * 1024
    max_recursion_depth: int = 100
    enable_print: bool = True  # Whether print() output is captured
