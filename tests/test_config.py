"""
Tests for the configuration module.
"""

from pathlib import Path

import pytest

from drupal_evaluator.config import (
    DEFAULT_CACHE_TTL,
    DEFAULT_TOOL_TIMEOUT,
    get_cache_dir,
    get_cache_ttl,
    get_file_config,
    get_tool_timeout,
    get_tools_dir,
    get_verify_ssl,
    get_work_dir,
    is_cache_enabled,
    is_verbose_enabled,
    reset_overrides,
    set_cache_enabled,
    set_cache_ttl,
    set_tool_timeout,
    set_verbose,
    set_verify_ssl,
    set_work_dir,
)


@pytest.fixture
def project_root(tmp_path):
    """The patched project root (see conftest)."""
    import drupal_evaluator.config

    return drupal_evaluator.config.PROJECT_ROOT


def test_file_config_from_local_file(project_root):
    """Test loading settings from .drupal-evaluator.toml."""
    (project_root / ".drupal-evaluator.toml").write_text(
        """
[tool.drupal-evaluator]
work_dir = "/srv/evaluations"

[tool.drupal-evaluator.tools]
timeout_seconds = 60
"""
    )

    assert get_file_config()["work_dir"] == "/srv/evaluations"
    assert get_tool_timeout() == 60
    assert get_work_dir() == Path("/srv/evaluations")


def test_file_config_from_pyproject(project_root):
    """Test loading settings from pyproject.toml."""
    (project_root / "pyproject.toml").write_text(
        """
[tool.drupal-evaluator.cache]
ttl_seconds = 120
enabled = false
"""
    )

    assert get_cache_ttl() == 120
    assert is_cache_enabled() is False


def test_local_config_takes_priority(project_root):
    """Test that .drupal-evaluator.toml takes priority over pyproject.toml."""
    (project_root / "pyproject.toml").write_text(
        """
[tool.drupal-evaluator.tools]
directory = "/from/pyproject"
"""
    )
    (project_root / ".drupal-evaluator.toml").write_text(
        """
[tool.drupal-evaluator.tools]
directory = "/from/local"
"""
    )

    assert get_tools_dir() == Path("/from/local")


def test_malformed_config_raises(project_root):
    """Test that an unparseable config file raises ConfigurationError."""
    (project_root / ".drupal-evaluator.toml").write_text("[tool.drupal-evaluator\n")

    with pytest.raises(ValueError, match=".drupal-evaluator.toml"):
        get_file_config()


def test_defaults_without_config(project_root):
    """Test default values when no config file exists."""
    assert get_cache_ttl() == DEFAULT_CACHE_TTL
    assert get_tool_timeout() == DEFAULT_TOOL_TIMEOUT
    assert get_tools_dir() == project_root
    assert get_work_dir().name == "drupal-evaluator"
    assert is_cache_enabled() is True


def test_environment_overrides_file(project_root, monkeypatch):
    """Test that environment variables take priority over the config file."""
    (project_root / ".drupal-evaluator.toml").write_text(
        """
[tool.drupal-evaluator.tools]
timeout_seconds = 60
"""
    )
    monkeypatch.setenv("DRUPAL_EVALUATOR_TOOL_TIMEOUT", "30")
    monkeypatch.setenv("DRUPAL_EVALUATOR_CACHE_DIR", "/tmp/evaluator-cache")
    reset_overrides()

    assert get_tool_timeout() == 30
    assert get_cache_dir() == Path("/tmp/evaluator-cache")


def test_invalid_environment_value_is_ignored(monkeypatch):
    """Test that a non-numeric environment value falls back to the default."""
    monkeypatch.setenv("DRUPAL_EVALUATOR_CACHE_TTL", "soon")

    assert get_cache_ttl() == DEFAULT_CACHE_TTL


def test_explicit_values_win(monkeypatch):
    """Test that explicitly set values take priority over everything else."""
    monkeypatch.setenv("DRUPAL_EVALUATOR_TOOL_TIMEOUT", "30")
    monkeypatch.setenv("DRUPAL_EVALUATOR_WORK_DIR", "/tmp/from-env")

    set_tool_timeout(5)
    set_work_dir("/tmp/explicit")
    set_cache_ttl(10)
    set_cache_enabled(False)

    assert get_tool_timeout() == 5
    assert get_work_dir() == Path("/tmp/explicit")
    assert get_cache_ttl() == 10
    assert is_cache_enabled() is False


def test_global_switches_reset():
    """Test that reset_overrides restores the defaults."""
    set_verify_ssl(False)
    set_verbose(True)
    assert get_verify_ssl() is False
    assert is_verbose_enabled() is True

    reset_overrides()

    assert get_verify_ssl() is True
    assert is_verbose_enabled() is False
