import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any

from pydantic import ValidationError

from automation_engine.config_loader import DEFAULT_CONFIG_FILE, load_config
from automation_engine.config_models import AppConfig
from automation_engine.errors import AutomationError
from automation_engine.runtime import AutomationRuntime

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level, logging.INFO),
    )
    # Keep external libraries less verbose
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.INFO)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="automation_engine", description="Rules-based automation engine"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to the YAML configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument("--database-url", help="Override the database URL")
    parser.add_argument("--log-level", help="Override the log level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("serve", help="Run the scheduler until interrupted")

    run_parser = subparsers.add_parser("run", help="Run one automation once")
    run_parser.add_argument("automation_id")
    run_parser.add_argument(
        "--event-data", default="{}", help="Event data as a JSON object"
    )
    run_parser.add_argument(
        "--test",
        action="store_true",
        help="Test run: ignore the enabled flag and all conditions",
    )

    table_parser = subparsers.add_parser(
        "create-table", help="Create a logical table for record actions"
    )
    table_parser.add_argument("table_name")
    return parser


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    updates: dict[str, Any] = {}
    if args.database_url:
        updates["database_url"] = args.database_url
    if args.log_level:
        updates["log_level"] = args.log_level.upper()
    return config.model_copy(update=updates) if updates else config


async def serve(runtime: AutomationRuntime) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal(signal_name: str) -> None:
        logger.warning(f"Received signal {signal_name}. Initiating shutdown...")
        shutdown_event.set()

    for sig_num, sig_name in ((signal.SIGINT, "SIGINT"), (signal.SIGTERM, "SIGTERM")):
        loop.add_signal_handler(sig_num, _on_signal, sig_name)

    await runtime.start()
    try:
        await shutdown_event.wait()
        logger.info("Shutdown signal received. Stopping services...")
    finally:
        await runtime.stop()


async def run_once(
    runtime: AutomationRuntime, automation_id: str, event_data: Any, is_test: bool  # noqa: ANN401
) -> int:
    await runtime.init_storage()
    try:
        log = await runtime.service.run_automation(
            automation_id, event_data, is_test=is_test
        )
    finally:
        await runtime.stop()

    if log is None:
        print(json.dumps({"skipped": True, "reason": "automation disabled"}))
        return 0
    print(json.dumps(log.model_dump(mode="json"), indent=2))
    return 0 if log.status == "success" else 1


async def create_table(runtime: AutomationRuntime, table_name: str) -> int:
    await runtime.init_storage()
    try:
        table_id = await runtime.service.create_table(table_name)
    finally:
        await runtime.stop()
    print(json.dumps({"table": table_name, "id": table_id}))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parses arguments, loads configuration and runs the chosen command."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_cli_overrides(load_config(args.config), args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    configure_logging(config.log_level)

    event_data = None
    if args.command == "run":
        try:
            event_data = json.loads(args.event_data)
        except json.JSONDecodeError as e:
            print(f"--event-data is not valid JSON: {e}", file=sys.stderr)
            return 2

    runtime = AutomationRuntime(config)
    try:
        if args.command == "serve":
            asyncio.run(serve(runtime))
            return 0
        if args.command == "create-table":
            return asyncio.run(create_table(runtime, args.table_name))
        return asyncio.run(run_once(runtime, args.automation_id, event_data, args.test))
    except AutomationError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
