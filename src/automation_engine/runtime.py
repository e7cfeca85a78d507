"""
Process wiring for the automation engine.
"""

import logging
from functools import partial

from sqlalchemy.ext.asyncio import AsyncEngine

from automation_engine.actions.executor import ActionExecutor
from automation_engine.automations.runner import AutomationRunner
from automation_engine.automations.scheduler import TriggerScheduler
from automation_engine.automations.service import AutomationsService
from automation_engine.config_models import AppConfig
from automation_engine.interfaces import EmailTransport, HttpClient
from automation_engine.scripting.apis import TableAPI, create_fetch_function
from automation_engine.scripting.config import ScriptConfig
from automation_engine.scripting.engine import MontyEngine
from automation_engine.services.email import SmtpEmailTransport
from automation_engine.services.http_client import HttpxClient
from automation_engine.services.notifier import AutomationEventBroadcaster
from automation_engine.storage import (
    create_engine_with_sqlite_optimizations,
    get_db_context,
    init_db,
)

logger = logging.getLogger(__name__)


class AutomationRuntime:
    """
    Builds and owns every long-lived component of the engine.

    Collaborators can be swapped for tests by passing them in.
    """

    def __init__(
        self,
        config: AppConfig,
        engine: AsyncEngine | None = None,
        http_client: HttpClient | None = None,
        email_transport: EmailTransport | None = None,
        notifier: AutomationEventBroadcaster | None = None,
    ) -> None:
        self.config = config
        self._owns_engine = engine is None
        self.engine = engine or create_engine_with_sqlite_optimizations(
            config.database_url
        )
        self.get_db_context = partial(get_db_context, self.engine)

        self.http_client = http_client or HttpxClient(
            timeout_seconds=config.http.timeout_seconds
        )
        if email_transport is None and config.smtp.host:
            email_transport = SmtpEmailTransport(
                host=config.smtp.host,
                port=config.smtp.port,
                username=config.smtp.username,
                password=config.smtp.password,
                from_address=config.smtp.from_address,
                use_tls=config.smtp.use_tls,
                start_tls=config.smtp.start_tls,
                timeout_seconds=config.smtp.timeout_seconds,
            )
        self.email_transport = email_transport
        self.notifier = notifier or AutomationEventBroadcaster()

        self.table_api = TableAPI(self.get_db_context)
        self.script_engine = MontyEngine(
            functions={
                **self.table_api.script_functions(),
                "fetch": create_fetch_function(self.http_client),
            },
            config=ScriptConfig(
                max_execution_time=config.scripting.max_execution_time,
                max_memory_bytes=config.scripting.max_memory_bytes,
                max_recursion_depth=config.scripting.max_recursion_depth,
                enable_print=config.scripting.enable_print,
            ),
        )
        self.executor = ActionExecutor(
            script_engine=self.script_engine,
            table_api=self.table_api,
            http_client=self.http_client,
            email_transport=self.email_transport,
            notifier=self.notifier,
        )
        self.runner = AutomationRunner(
            self.get_db_context,
            self.executor,
            notifier=self.notifier,
            exclusive_runs=config.runner.exclusive_runs,
        )
        self.scheduler = TriggerScheduler(
            run_callback=self._scheduled_run,
            get_db_context=self.get_db_context,
            default_cron=config.scheduler.default_cron,
            timezone=config.scheduler.timezone,
        )
        self.service = AutomationsService(
            self.get_db_context,
            self.runner,
            self.scheduler,
            notifier=self.notifier,
        )

    async def _scheduled_run(self, automation_id: str, event_data: dict) -> None:
        await self.runner.run(automation_id, event_data)

    async def init_storage(self) -> None:
        await init_db(self.engine)

    async def start(self) -> None:
        """Create the schema, start the scheduler and register timers."""
        await self.init_storage()
        await self.scheduler.startup()
        logger.info("Automation runtime started")

    async def stop(self) -> None:
        await self.scheduler.shutdown(
            wait_seconds=self.config.scheduler.shutdown_grace_seconds
        )
        if isinstance(self.http_client, HttpxClient):
            await self.http_client.aclose()
        if self._owns_engine:
            await self.engine.dispose()
        logger.info("Automation runtime stopped")
