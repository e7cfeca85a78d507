"""Rules-based automation engine: triggers, conditions and action pipelines."""

__version__ = "0.1.0"
