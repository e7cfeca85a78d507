"""Capabilities exposed to sandboxed scripts."""

from automation_engine.scripting.apis.http import create_fetch_function
from automation_engine.scripting.apis.tables import TableAPI

__all__ = ["TableAPI", "create_fetch_function"]
