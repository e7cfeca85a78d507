"""
Cron timers for scheduled automations.

One APScheduler job per scheduled automation, keyed by the automation id.
All mutations of the job registry go through a single lock so that
``register`` can never leave two live timers for one automation.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from automation_engine.errors import ValidationError
from automation_engine.storage.automations import TriggerType
from automation_engine.storage.context import DatabaseContext
from automation_engine.storage.models import DEFAULT_CRON

logger = logging.getLogger(__name__)

CRON_EVENT_DATA = {"reason": "cron"}

RunCallback = Callable[[str, dict[str, Any]], Awaitable[Any]]

_UNSET = object()


def parse_cron(cron_expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Build a trigger from a five-field crontab expression.

    Raises:
        ValidationError: If the expression or timezone is invalid.
    """
    if not isinstance(cron_expression, str):
        raise ValidationError(
            f"Invalid cron expression {cron_expression!r}: expected a string"
        )
    try:
        return CronTrigger.from_crontab(cron_expression, timezone=timezone)
    except (ValueError, TypeError, LookupError) as e:
        raise ValidationError(
            f"Invalid cron expression {cron_expression!r}: {e}"
        ) from e


class TriggerScheduler:
    """Keeps cron timers in step with scheduled automations."""

    def __init__(
        self,
        run_callback: RunCallback,
        get_db_context: Callable[[], DatabaseContext] | None = None,
        default_cron: str = DEFAULT_CRON,
        timezone: str = "UTC",
    ) -> None:
        """
        Args:
            run_callback: Invoked as ``run_callback(automation_id, event_data)``
                on every fire.
            get_db_context: Storage access for the startup reconciliation.
            default_cron: Expression used when an automation configures none.
            timezone: Timezone cron expressions are evaluated in.
        """
        self._run_callback = run_callback
        self._get_db_context = get_db_context
        self.default_cron = default_cron
        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._lock = asyncio.Lock()
        self._in_flight: set[asyncio.Task[Any]] = set()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def startup(self) -> None:
        """Start ticking and register every enabled scheduled automation."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Trigger scheduler started")
        await self.reconcile()

    async def reconcile(self) -> int:
        """
        Register timers for all enabled scheduled automations.

        A failure for one automation is logged and does not stop the others.

        Returns:
            The number of timers registered.
        """
        if self._get_db_context is None:
            return 0

        async with self._get_db_context() as db:
            automations = await db.automations.list_all(
                trigger_type=TriggerType.SCHEDULED.value, enabled_only=True
            )

        registered = 0
        for automation in automations:
            try:
                await self.register(
                    automation.id, automation.cron_expression(self.default_cron)
                )
                registered += 1
            except Exception as e:
                logger.error(
                    f"Failed to register timer for automation {automation.id}: {e}",
                    exc_info=True,
                )
        logger.info(
            f"Reconciled {registered}/{len(automations)} scheduled automation(s)"
        )
        return registered

    async def shutdown(self, wait_seconds: float = 5.0) -> None:
        """Stop ticking and give in-flight runs a moment to finish."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Trigger scheduler shut down")

        if self._in_flight:
            _, pending = await asyncio.wait(set(self._in_flight), timeout=wait_seconds)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} unfinished scheduled run(s)")

    async def register(
        self,
        automation_id: str,
        cron_expression: str | None = None,
        paused: bool = False,
    ) -> None:
        """
        Create the timer for an automation, replacing any existing one.

        With ``paused`` the replacement timer is created stopped, in the same
        locked step, so it never ticks.
        """
        trigger = parse_cron(cron_expression or self.default_cron, self.timezone)
        job_options: dict[str, Any] = {}
        if paused:
            job_options["next_run_time"] = None
        async with self._lock:
            if self._scheduler.get_job(automation_id) is not None:
                self._scheduler.remove_job(automation_id)
            self._scheduler.add_job(
                self._fire,
                trigger=trigger,
                id=automation_id,
                args=[automation_id],
                name=f"automation:{automation_id}",
                coalesce=True,
                misfire_grace_time=60,
                **job_options,
            )
        logger.info(
            f"Registered {'paused ' if paused else ''}timer for automation "
            f"{automation_id} ({cron_expression or self.default_cron})"
        )

    async def remove(self, automation_id: str) -> None:
        """Stop and forget the timer for an automation, if any."""
        async with self._lock:
            if self._scheduler.get_job(automation_id) is None:
                return
            self._scheduler.remove_job(automation_id)
        logger.info(f"Removed timer for automation {automation_id}")

    async def stop(self, automation_id: str) -> None:
        """Pause the timer without forgetting it."""
        async with self._lock:
            if self._scheduler.get_job(automation_id) is None:
                logger.debug(f"No timer to stop for automation {automation_id}")
                return
            self._scheduler.pause_job(automation_id)
        logger.info(f"Stopped timer for automation {automation_id}")

    async def start(self, automation_id: str) -> None:
        """Resume a paused timer."""
        async with self._lock:
            if self._scheduler.get_job(automation_id) is None:
                logger.debug(f"No timer to start for automation {automation_id}")
                return
            self._scheduler.resume_job(automation_id)
        logger.info(f"Started timer for automation {automation_id}")

    def has(self, automation_id: str) -> bool:
        return self._scheduler.get_job(automation_id) is not None

    def is_paused(self, automation_id: str) -> bool:
        job = self._scheduler.get_job(automation_id)
        if job is None:
            return False
        # Jobs added before the scheduler starts have no next_run_time yet
        return getattr(job, "next_run_time", _UNSET) is None

    def registered_ids(self) -> list[str]:
        return sorted(job.id for job in self._scheduler.get_jobs())

    async def _fire(self, automation_id: str) -> None:
        """Start a run for one tick without waiting for it to finish."""
        if not self.has(automation_id):
            logger.debug(f"Ignoring tick for removed automation {automation_id}")
            return

        logger.info(f"Cron tick for automation {automation_id}")
        task = asyncio.create_task(
            self._run_callback(automation_id, dict(CRON_EVENT_DATA)),
            name=f"scheduled-run-{automation_id}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._on_run_done)

    def _on_run_done(self, task: "asyncio.Task[Any]") -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Scheduled run {task.get_name()} failed: {exc}", exc_info=exc
            )
