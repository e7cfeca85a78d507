"""Builds the AppConfig from defaults, a YAML file and the environment.

Later sources win: model defaults, then the YAML file (with ${VAR}
references expanded), then the environment variables listed in
ENV_VAR_MAPPINGS. Command line flags are applied by the caller.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import string
import zoneinfo
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from .config_models import AppConfig
from .config_sources import deep_merge_dicts, load_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"

_TRUTHY = {"true", "1", "yes", "on"}


@dataclass
class EnvVarMapping:
    """One supported environment variable and the dotted config key it sets."""

    env_var: str
    config_path: str
    value_type: type = str


ENV_VAR_MAPPINGS: list[EnvVarMapping] = [
    EnvVarMapping("DATABASE_URL", "database_url"),
    EnvVarMapping("LOG_LEVEL", "log_level"),
    EnvVarMapping("SMTP_HOST", "smtp.host"),
    EnvVarMapping("SMTP_PORT", "smtp.port", int),
    EnvVarMapping("SMTP_USER", "smtp.username"),
    EnvVarMapping("SMTP_PASS", "smtp.password"),
    EnvVarMapping("SMTP_FROM", "smtp.from_address"),
    EnvVarMapping("SCRIPT_TIMEOUT_SECONDS", "scripting.max_execution_time", float),
    EnvVarMapping("HTTP_TIMEOUT_SECONDS", "http.timeout_seconds", float),
    EnvVarMapping("DEFAULT_CRON", "scheduler.default_cron"),
    EnvVarMapping("SCHEDULER_TIMEZONE", "scheduler.timezone"),
    EnvVarMapping("EXCLUSIVE_RUNS", "runner.exclusive_runs", bool),
]


def set_nested_value(
    data: dict[str, Any],
    path: str,
    value: Any,  # noqa: ANN401
) -> None:
    """Set a value at a dot-separated path, creating intermediate dicts."""
    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def parse_env_value(value: str, value_type: type) -> Any:  # noqa: ANN401
    """Convert a raw environment string; raises ValueError when it does not parse."""
    if value_type is bool:
        return value.strip().lower() in _TRUTHY
    if value_type in (int, float):
        return value_type(value)
    return value


def expand_env_vars_in_dict(
    data: Any,  # noqa: ANN401
) -> Any:  # noqa: ANN401
    """Recursively expand ``${VAR}`` references in string values."""
    if isinstance(data, dict):
        return {key: expand_env_vars_in_dict(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars_in_dict(item) for item in data]
    elif isinstance(data, str):
        template = string.Template(data)
        try:
            return template.substitute(os.environ)
        except (KeyError, ValueError) as e:
            logger.warning(
                f"Environment variable expansion failed: {e}. Using original value: {data}"
            )
            return data
    else:
        return data


def apply_env_var_overrides(
    config_data: dict[str, Any],
    mappings: list[EnvVarMapping] | None = None,
) -> None:
    """Apply environment variable overrides to configuration in place."""
    if mappings is None:
        mappings = ENV_VAR_MAPPINGS

    for mapping in mappings:
        env_value = os.getenv(mapping.env_var)
        if env_value is not None:
            try:
                parsed_value = parse_env_value(env_value, mapping.value_type)
                set_nested_value(config_data, mapping.config_path, parsed_value)
                logger.debug(
                    f"Applied env var {mapping.env_var} to {mapping.config_path}"
                )
            except ValueError as e:
                logger.error(
                    f"Invalid value for {mapping.env_var}: {e}. Using previous value."
                )


def validate_timezone(config_data: dict[str, Any]) -> None:
    """Reset an unknown scheduler timezone to UTC."""
    scheduler = config_data.setdefault("scheduler", {})
    timezone = scheduler.get("timezone", "UTC")

    try:
        zoneinfo.ZoneInfo(timezone)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.error(f"Invalid timezone '{timezone}'. Defaulting to UTC.")
        scheduler["timezone"] = "UTC"


def load_config(
    config_file_path: str = DEFAULT_CONFIG_FILE,
    load_dotenv_file: bool = True,
) -> AppConfig:
    """Load configuration with clear priority hierarchy.

    CLI arguments should be applied after this function returns using
    AppConfig.model_copy(update={...}).

    Raises:
        ValidationError: If configuration contains invalid keys or values
    """
    if load_dotenv_file:
        load_dotenv()

    config_data = AppConfig().model_dump()

    yaml_data = expand_env_vars_in_dict(load_yaml_file(config_file_path))
    if yaml_data:
        config_data = deep_merge_dicts(config_data, yaml_data)
        logger.info(f"Loaded configuration from {config_file_path}")

    apply_env_var_overrides(config_data)
    validate_timezone(config_data)

    _log_config(config_data)

    try:
        validated_config = AppConfig.model_validate(config_data)
        logger.info("Configuration validated successfully.")
        return validated_config
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise


def _log_config(config_data: dict[str, Any]) -> None:
    """Log configuration excluding sensitive values."""
    loggable = copy.deepcopy({
        k: v for k, v in config_data.items() if k != "database_url"
    })
    if isinstance(loggable.get("smtp"), dict):
        loggable["smtp"].pop("password", None)

    logger.info(
        f"Final configuration (excluding secrets): {json.dumps(loggable, indent=2, default=str)}"
    )
