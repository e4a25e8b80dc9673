"""
Configuration management for the Drupal project evaluator.

Settings are resolved in this order:
1. Values set explicitly at runtime (CLI flags call the ``set_*`` functions)
2. ``DRUPAL_EVALUATOR_*`` environment variables (``.env`` is honoured)
3. .drupal-evaluator.toml (local config)
4. pyproject.toml ``[tool.drupal-evaluator]`` (project-level config)
5. Built-in defaults
"""

import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

# project_root is the parent directory of drupal_evaluator/
PROJECT_ROOT = Path(__file__).resolve().parent.parent

CONFIG_SECTION = "drupal-evaluator"
LOCAL_CONFIG_NAME = ".drupal-evaluator.toml"

# Global configuration for SSL verification
# Default: True (verify SSL certificates)
# Can be set to False by CLI --insecure flag
VERIFY_SSL = True

# Verbose diagnostics (tool stderr, progress messages)
VERBOSE = False

# Cache configuration
# Default cache directory: ~/.cache/drupal-evaluator
DEFAULT_CACHE_DIR = Path.home() / ".cache" / "drupal-evaluator"
# Default TTL: 1 day (in seconds)
DEFAULT_CACHE_TTL = 24 * 60 * 60

# External tools are killed after 20 minutes
DEFAULT_TOOL_TIMEOUT = 1200

_CACHE_DIR: Path | None = None
_CACHE_TTL: int | None = None
_CACHE_ENABLED: bool | None = None
_TOOLS_DIR: Path | None = None
_TOOL_TIMEOUT: int | None = None
_WORK_DIR: Path | None = None


class ConfigurationError(Exception):
    """Raised when the evaluator is configured or invoked incorrectly."""


def load_config_file(config_path: Path) -> dict:
    """Load a TOML configuration file."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def get_file_config() -> dict[str, Any]:
    """
    Return the ``[tool.drupal-evaluator]`` table from the config files.

    The local .drupal-evaluator.toml wins over pyproject.toml; the two are
    not merged.

    Returns:
        The settings table, or an empty dict when neither file defines one.
    """
    for name in (LOCAL_CONFIG_NAME, "pyproject.toml"):
        config_path = PROJECT_ROOT / name
        if not config_path.exists():
            continue
        section = load_config_file(config_path).get("tool", {}).get(CONFIG_SECTION)
        if section:
            return section
    return {}


def _get_env_int(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def set_verify_ssl(verify: bool) -> None:
    """
    Set the SSL verification setting globally.

    Args:
        verify: Whether to verify SSL certificates.
    """
    global VERIFY_SSL
    VERIFY_SSL = verify


def get_verify_ssl() -> bool:
    """
    Get the current SSL verification setting.

    Returns:
        Whether SSL verification is enabled.
    """
    return VERIFY_SSL


def set_verbose(verbose: bool) -> None:
    """Enable or disable verbose diagnostics."""
    global VERBOSE
    VERBOSE = verbose


def is_verbose_enabled() -> bool:
    """Return True when verbose diagnostics were requested."""
    return VERBOSE


def get_cache_dir() -> Path:
    """
    Get the cache directory path.

    Priority:
    1. Explicitly set value via set_cache_dir()
    2. DRUPAL_EVALUATOR_CACHE_DIR environment variable
    3. ``cache.directory`` in the config file
    4. Default: ~/.cache/drupal-evaluator

    Returns:
        Path to the cache directory.
    """
    if _CACHE_DIR is not None:
        return _CACHE_DIR

    env_cache_dir = os.getenv("DRUPAL_EVALUATOR_CACHE_DIR")
    if env_cache_dir:
        return Path(env_cache_dir).expanduser()

    cache_config = get_file_config().get("cache", {})
    if "directory" in cache_config:
        return Path(cache_config["directory"]).expanduser()

    return DEFAULT_CACHE_DIR


def set_cache_dir(path: Path | str) -> None:
    """
    Set the cache directory path explicitly.

    Args:
        path: Path to the cache directory.
    """
    global _CACHE_DIR
    _CACHE_DIR = Path(path).expanduser()


def get_cache_ttl() -> int:
    """
    Get the cache TTL (Time To Live) in seconds.

    Priority:
    1. Explicitly set value via set_cache_ttl()
    2. DRUPAL_EVALUATOR_CACHE_TTL environment variable
    3. ``cache.ttl_seconds`` in the config file
    4. Default: 86400 (1 day)

    Returns:
        TTL in seconds.
    """
    if _CACHE_TTL is not None:
        return _CACHE_TTL

    env_cache_ttl = _get_env_int("DRUPAL_EVALUATOR_CACHE_TTL")
    if env_cache_ttl is not None:
        return env_cache_ttl

    cache_config = get_file_config().get("cache", {})
    if "ttl_seconds" in cache_config:
        return int(cache_config["ttl_seconds"])

    return DEFAULT_CACHE_TTL


def set_cache_ttl(seconds: int) -> None:
    """
    Set the cache TTL (Time To Live) explicitly.

    Args:
        seconds: TTL in seconds.
    """
    global _CACHE_TTL
    _CACHE_TTL = seconds


def set_cache_enabled(enabled: bool) -> None:
    """Turn the response cache on or off for this run (--no-cache)."""
    global _CACHE_ENABLED
    _CACHE_ENABLED = enabled


def is_cache_enabled() -> bool:
    """
    Check if cache is enabled.

    Priority:
    1. Explicitly set value via set_cache_enabled()
    2. ``cache.enabled`` in the config file
    3. Default: True

    Returns:
        Whether cache is enabled.
    """
    if _CACHE_ENABLED is not None:
        return _CACHE_ENABLED

    cache_config = get_file_config().get("cache", {})
    if "enabled" in cache_config:
        return bool(cache_config["enabled"])

    return True


def get_tools_dir() -> Path:
    """
    Get the directory the analysis tools are run from.

    This is the directory holding ``vendor/bin/phpcs`` and
    ``vendor/bin/drupal-check`` (a ``composer install`` of the tool chain).

    Priority:
    1. Explicitly set value via set_tools_dir()
    2. DRUPAL_EVALUATOR_TOOLS_DIR environment variable
    3. ``tools.directory`` in the config file
    4. Default: the project root
    """
    if _TOOLS_DIR is not None:
        return _TOOLS_DIR

    env_tools_dir = os.getenv("DRUPAL_EVALUATOR_TOOLS_DIR")
    if env_tools_dir:
        return Path(env_tools_dir).expanduser()

    tools_config = get_file_config().get("tools", {})
    if "directory" in tools_config:
        return Path(tools_config["directory"]).expanduser()

    return PROJECT_ROOT


def set_tools_dir(path: Path | str) -> None:
    """Set the tools directory explicitly."""
    global _TOOLS_DIR
    _TOOLS_DIR = Path(path).expanduser()


def get_tool_timeout() -> int:
    """
    Get the wall-clock limit for a single external tool run, in seconds.

    Priority:
    1. Explicitly set value via set_tool_timeout()
    2. DRUPAL_EVALUATOR_TOOL_TIMEOUT environment variable
    3. ``tools.timeout_seconds`` in the config file
    4. Default: 1200 (20 minutes)
    """
    if _TOOL_TIMEOUT is not None:
        return _TOOL_TIMEOUT

    env_timeout = _get_env_int("DRUPAL_EVALUATOR_TOOL_TIMEOUT")
    if env_timeout is not None:
        return env_timeout

    tools_config = get_file_config().get("tools", {})
    if "timeout_seconds" in tools_config:
        return int(tools_config["timeout_seconds"])

    return DEFAULT_TOOL_TIMEOUT


def set_tool_timeout(seconds: int) -> None:
    """Set the external tool timeout explicitly."""
    global _TOOL_TIMEOUT
    _TOOL_TIMEOUT = seconds


def get_work_dir() -> Path:
    """
    Get the root directory for downloads and extracted archives.

    Priority:
    1. Explicitly set value via set_work_dir()
    2. DRUPAL_EVALUATOR_WORK_DIR environment variable
    3. ``work_dir`` in the config file
    4. Default: <system temp dir>/drupal-evaluator
    """
    if _WORK_DIR is not None:
        return _WORK_DIR

    env_work_dir = os.getenv("DRUPAL_EVALUATOR_WORK_DIR")
    if env_work_dir:
        return Path(env_work_dir).expanduser()

    file_config = get_file_config()
    if "work_dir" in file_config:
        return Path(file_config["work_dir"]).expanduser()

    return Path(tempfile.gettempdir()) / "drupal-evaluator"


def set_work_dir(path: Path | str) -> None:
    """Set the work directory explicitly."""
    global _WORK_DIR
    _WORK_DIR = Path(path).expanduser()


def reset_overrides() -> None:
    """Forget every value set through the ``set_*`` functions."""
    global VERIFY_SSL, VERBOSE
    global _CACHE_DIR, _CACHE_TTL, _CACHE_ENABLED, _TOOLS_DIR, _TOOL_TIMEOUT, _WORK_DIR
    VERIFY_SSL = True
    VERBOSE = False
    _CACHE_DIR = None
    _CACHE_TTL = None
    _CACHE_ENABLED = None
    _TOOLS_DIR = None
    _TOOL_TIMEOUT = None
    _WORK_DIR = None
