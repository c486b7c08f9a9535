"""Configuration loader with YAML and environment variable support."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from exambot.core.config.config_models import AppConfig
from exambot.core.environment import Environment
from exambot.core.exceptions import ConfigurationError

# Environment variables that must resolve in production
CRITICAL_ENV_VARS: frozenset[str] = frozenset(
    {
        "TELEGRAM_TOKEN",
        "DATABASE_URL",
        "ENCRYPTION_KEY",
    }
)

# Sensitive configuration keys to mask in logs
SENSITIVE_CONFIG_KEYS: frozenset[str] = frozenset(
    {
        "database_url",
        "password",
        "secret",
        "token",
        "encryption_key",
        "credential",
    }
)

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_env_variables() -> None:
    """Load environment variables from .env file."""
    env_path = Path(__file__).parent.parent.parent / ".env"

    if env_path.exists():
        load_dotenv(env_path)
        logger.debug(f"Loaded environment variables from {env_path}")


def substitute_env_vars(value: Any, _is_production: Optional[bool] = None) -> Any:
    """
    Recursively substitute ``${VAR}`` references with environment values.

    Args:
        value: Configuration value (string, dict, list, etc.)
        _is_production: Internal parameter - cached production check

    Returns:
        Value with environment variables substituted

    Raises:
        ConfigurationError: If a critical env var is missing in production
    """
    if _is_production is None:
        _is_production = Environment.is_production()

    if isinstance(value, str):
        for match in _ENV_PATTERN.findall(value):
            env_value = os.getenv(match)
            if env_value is None:
                if match in CRITICAL_ENV_VARS and _is_production:
                    raise ConfigurationError(
                        f"Environment variable '{match}' is required in production but not set",
                        details={"variable": match},
                    )
                logger.debug(f"Environment variable '{match}' not set, using empty string")
                env_value = ""
            value = value.replace(f"${{{match}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: substitute_env_vars(v, _is_production) for k, v in value.items()}
    elif isinstance(value, list):
        return [substitute_env_vars(item, _is_production) for item in value]
    return value


def safe_config_summary(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Copy of a config dict with sensitive values masked for logging.

    Args:
        config: Configuration dictionary

    Returns:
        New dictionary with sensitive values replaced by "[REDACTED]"
    """
    safe_config: Dict[str, Any] = {}
    for key, value in config.items():
        if any(pattern in key.lower() for pattern in SENSITIVE_CONFIG_KEYS):
            safe_config[key] = "[REDACTED]"
        elif isinstance(value, dict):
            safe_config[key] = safe_config_summary(value)
        else:
            safe_config[key] = value
    return safe_config


def load_config(config_path: str = "config/config.yaml") -> AppConfig:
    """
    Load configuration from YAML file with environment variable substitution.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated application configuration

    Raises:
        FileNotFoundError: If no config file is available
        ConfigurationError: If the file does not validate
    """
    load_env_variables()

    env = Environment.current()
    config_file = Path(config_path)
    if not config_file.exists():
        if Environment.is_production():
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}. "
                f"Example config fallback is disabled in {env}."
            )
        example_config = Path("config/config.example.yaml")
        if not example_config.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path} and no example config available"
            )
        logger.warning(f"Config file not found: {config_path}. Falling back to example config")
        config_file = example_config

    logger.info(f"Loading config from {config_file} in {env} environment")

    with open(config_file, "r", encoding="utf-8") as f:
        config_data: Any = yaml.safe_load(f)

    raw: Dict[str, Any] = substitute_env_vars(config_data) if isinstance(config_data, dict) else {}
    logger.debug(f"Config loaded: {safe_config_summary(raw)}")

    try:
        return AppConfig.from_dict(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_file}: {e}") from e
