"""Automation rules: conditions, the run pipeline, cron timers and management."""

from automation_engine.automations.condition_evaluator import evaluate
from automation_engine.automations.runner import AutomationRunner
from automation_engine.automations.scheduler import TriggerScheduler
from automation_engine.automations.service import AutomationsService

__all__ = ["AutomationRunner", "AutomationsService", "TriggerScheduler", "evaluate"]
