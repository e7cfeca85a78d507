import logging
import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from functools import partial

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from automation_engine.actions.executor import ActionExecutor
from automation_engine.automations.runner import AutomationRunner
from automation_engine.automations.scheduler import TriggerScheduler
from automation_engine.automations.service import AutomationsService
from automation_engine.scripting.apis import TableAPI, create_fetch_function
from automation_engine.scripting.config import ScriptConfig
from automation_engine.scripting.engine import MontyEngine
from automation_engine.storage import (
    create_engine_with_sqlite_optimizations,
    get_db_context,
    init_db,
)
from automation_engine.storage.context import DatabaseContext
from tests.mocks.recording import (
    RecordingEmailTransport,
    RecordingHttpClient,
    RecordingNotifier,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A fresh on-disk SQLite database with the schema created."""
    with tempfile.NamedTemporaryFile(
        prefix="ae_test_", suffix=".sqlite", delete=False
    ) as tmp_file:
        tmp_name = tmp_file.name

    engine = create_engine_with_sqlite_optimizations(f"sqlite+aiosqlite:///{tmp_name}")
    logger.info(f"Created SQLite test engine: {engine.url}")
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()
        try:
            os.unlink(tmp_name)
        except OSError as e:
            logger.warning(f"Could not remove test database {tmp_name}: {e}")


@pytest.fixture
def db_context_factory(db_engine: AsyncEngine) -> Callable[[], DatabaseContext]:
    return partial(get_db_context, db_engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def http_client() -> RecordingHttpClient:
    return RecordingHttpClient()


@pytest.fixture
def email_transport() -> RecordingEmailTransport:
    return RecordingEmailTransport()


@pytest.fixture
def table_api(db_context_factory: Callable[[], DatabaseContext]) -> TableAPI:
    return TableAPI(db_context_factory)


@pytest.fixture
def script_engine(
    table_api: TableAPI, http_client: RecordingHttpClient
) -> MontyEngine:
    return MontyEngine(
        functions={
            **table_api.script_functions(),
            "fetch": create_fetch_function(http_client),
        },
        config=ScriptConfig(max_execution_time=10.0),
    )


@pytest.fixture
def executor(
    script_engine: MontyEngine,
    table_api: TableAPI,
    http_client: RecordingHttpClient,
    email_transport: RecordingEmailTransport,
    notifier: RecordingNotifier,
) -> ActionExecutor:
    return ActionExecutor(
        script_engine=script_engine,
        table_api=table_api,
        http_client=http_client,
        email_transport=email_transport,
        notifier=notifier,
    )


@pytest.fixture
def runner(
    db_context_factory: Callable[[], DatabaseContext],
    executor: ActionExecutor,
    notifier: RecordingNotifier,
) -> AutomationRunner:
    return AutomationRunner(db_context_factory, executor, notifier=notifier)


@pytest.fixture
def fired_runs() -> list[tuple[str, dict]]:
    return []


@pytest_asyncio.fixture(scope="function")
async def scheduler(
    db_context_factory: Callable[[], DatabaseContext],
    fired_runs: list[tuple[str, dict]],
) -> AsyncGenerator[TriggerScheduler, None]:
    """A scheduler that is never started; ticks are driven by calling ``_fire``."""

    async def record_run(automation_id: str, event_data: dict) -> None:
        fired_runs.append((automation_id, event_data))

    trigger_scheduler = TriggerScheduler(
        run_callback=record_run, get_db_context=db_context_factory
    )
    yield trigger_scheduler
    await trigger_scheduler.shutdown(wait_seconds=1.0)


@pytest.fixture
def service(
    db_context_factory: Callable[[], DatabaseContext],
    runner: AutomationRunner,
    scheduler: TriggerScheduler,
    notifier: RecordingNotifier,
) -> AutomationsService:
    return AutomationsService(db_context_factory, runner, scheduler, notifier=notifier)

