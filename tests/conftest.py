"""
Shared fixtures.
"""

import pytest

import drupal_evaluator.config
from drupal_evaluator.config import reset_overrides, set_cache_dir

ENV_VARS = (
    "DRUPAL_EVALUATOR_CACHE_DIR",
    "DRUPAL_EVALUATOR_CACHE_TTL",
    "DRUPAL_EVALUATOR_TOOLS_DIR",
    "DRUPAL_EVALUATOR_TOOL_TIMEOUT",
    "DRUPAL_EVALUATOR_WORK_DIR",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run every test against a private cache dir and no config files."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(drupal_evaluator.config, "PROJECT_ROOT", tmp_path)
    reset_overrides()
    set_cache_dir(tmp_path / "cache")
    yield
    reset_overrides()
