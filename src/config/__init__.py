"""
Configuration Module for the Ghost node.

This module provides configuration loading and management for the Ghost
request/upload engine. Configuration is loaded from config.yml and supports
Docker secrets for API keys.

Usage:
    >>> from config import load_config
    >>> config = load_config()
    >>> timeout = config.get("ghost", {}).get("timeout", 30)
"""
import os
import sys
import yaml
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)
DEFAULT_TIMEZONE = "UTC"
DEFAULT_TIMEOUT = 30
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONFIG_FILENAME = "config.yml"


def _find_config_file() -> Optional[Path]:
    """Return the first config.yml in the CWD, its parents, or the project root."""
    cwd = Path.cwd()
    search_dirs = [cwd, *cwd.parents, Path(__file__).resolve().parents[2]]
    for directory in search_dirs:
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load the node configuration from config.yml.

    Args:
        config_path: Explicit path to the file. When omitted the file is
                     searched for with _find_config_file().

    Returns:
        Parsed configuration, or get_default_config() when the file is
        missing, unparseable or not a mapping

    Example:
        >>> config = load_config()
        >>> config["ghost"]["timeout"]
        30
    """
    path = Path(config_path) if config_path else _find_config_file()
    if path is None:
        logger.warning(f"{CONFIG_FILENAME} not found, falling back to defaults")
        return get_default_config()

    try:
        with open(path, "r") as f:
            loaded = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file {path} does not exist, falling back to defaults")
        return get_default_config()
    except yaml.YAMLError as e:
        logger.error(f"Could not parse {path}: {e}")
        return get_default_config()

    if not isinstance(loaded, dict):
        logger.warning(f"Top level of {path} is not a mapping, falling back to defaults")
        return get_default_config()

    loaded["timezone"] = get_timezone_name(loaded)
    logger.info(f"Loaded configuration from {path}")
    return loaded


def get_default_config() -> Dict[str, Any]:
    """Return default configuration when config.yml is not available.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "timezone": DEFAULT_TIMEZONE,
        "ghost": {
            "timeout": DEFAULT_TIMEOUT,
            "max_pages": None,
            "api_version": None
        },
        "credentials": {
            "ghostAdminApi": {
                "url": "",
                "api_key_file": "/run/secrets/ghost_admin_api_key"
            },
            "ghostContentApi": {
                "url": "",
                "api_key_file": "/run/secrets/ghost_content_api_key"
            }
        },
        "logging": {
            "level": "INFO",
            "file": None
        }
    }


def get_timezone_name(config: Dict[str, Any]) -> str:
    """Return a validated timezone name from config, with UTC fallback."""
    tz_name = config.get("timezone", DEFAULT_TIMEZONE)
    if not isinstance(tz_name, str) or not tz_name.strip():
        logger.warning(f"Invalid timezone configuration {tz_name!r}; falling back to {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE

    tz_name = tz_name.strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{tz_name}'; falling back to {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE

    return tz_name


def get_timezone(config: Dict[str, Any]) -> ZoneInfo:
    """Return a validated ZoneInfo instance from config."""
    return ZoneInfo(get_timezone_name(config))


def read_secret_file(filepath: str) -> Optional[str]:
    """Read a Docker secret from a file.

    Docker secrets are mounted as files in /run/secrets/ directory.
    This function reads the content of the secret file.

    Args:
        filepath: Path to the secret file

    Returns:
        Content of the secret file (stripped of whitespace), or None if file doesn't exist

    Example:
        >>> api_key = read_secret_file("/run/secrets/ghost_admin_api_key")
    """
    try:
        with open(filepath, "r") as f:
            return f.read().strip()
    except FileNotFoundError:
        logger.debug(f"Secret file not found: {filepath}")
        return None
    except OSError as e:
        logger.error(f"Error reading secret file {filepath}: {e}")
        return None


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger for a host embedding the Ghost node.

    Installs a stdout handler and, when ``log_file`` is given, a rotating
    file handler with a 10MB limit and 3 backups. Existing root handlers are
    cleared to avoid duplicate lines.

    Args:
        debug: Log at DEBUG level instead of INFO. Also enabled by the
               GHOST_NODE_DEBUG environment variable.
        log_file: Optional path of the rotating log file

    Returns:
        The configured root logger
    """
    if not debug:
        debug = os.environ.get("GHOST_NODE_DEBUG", "").lower() in ("true", "1", "yes")

    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if debug:
        logger.info("Debug logging enabled")

    return root_logger


def configure_logging_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Configure logging from the ``logging`` section of config.yml."""
    logging_config = config.get("logging") or {}
    debug = str(logging_config.get("level", "INFO")).upper() == "DEBUG"
    return configure_logging(debug=debug, log_file=logging_config.get("file"))
