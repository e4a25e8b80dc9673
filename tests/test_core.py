"""
Tests for the evaluation pipeline.
"""

import asyncio
import time
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from drupal_evaluator.config import ConfigurationError
from drupal_evaluator.core import (
    FIELD_LABELS,
    EvaluationOptions,
    Evaluator,
    ManifestEntry,
    core_compatibility_for,
    load_manifest,
)
from drupal_evaluator.drupal_org.client import (
    DrupalOrgClient,
    ProjectNotFoundError,
    RegistryError,
)
from drupal_evaluator.drupal_org.enums import CoreCompatibility
from drupal_evaluator.external_tools.base import ToolLaunchError
from drupal_evaluator.external_tools.composer_tools import CoreDownloadTool
from fakes import FakeRegistry, node_page

DAY = 24 * 60 * 60

PROJECT_NODE = {
    "nid": "1",
    "title": "Example",
    "field_project_machine_name": "example",
    "field_project_has_issue_queue": True,
    "field_project_has_releases": True,
    "field_security_advisory_coverage": "covered",
    "flag_project_star_user": [{"id": "9"}],
    "project_usage": {"8.x-1.x": 1200, "7.x-1.x": 80},
}


def release_node(version: str, extra: str | None, age_days: float) -> dict:
    return {
        "nid": "50",
        "field_release_version": version,
        "field_release_version_extra": extra,
        "field_release_version_major": "1",
        "created": str(int(time.time() - age_days * DAY)),
    }


RELEASES = [
    release_node("8.x-1.x-dev", "dev", 1),
    release_node("8.x-1.4", None, 10),
    release_node("7.x-1.2", None, 400),
]


def registry_handler(log: list[str], releases: list[dict], failing: set[str]):
    """drupal.org with 112 open ACTIVE issues (2 pages) and nothing else."""

    def handler(query):
        log.append("registry")
        if query.get("type") in failing:
            return httpx.Response(500)
        if "field_project_machine_name" in query:
            name = query["field_project_machine_name"]
            return node_page([PROJECT_NODE] if name == "example" else [])
        if query.get("type") == "project_release":
            return node_page(releases)
        if "sort" in query:
            return node_page([])
        if "field_issue_priority" in query or "field_issue_category" in query:
            return node_page([])
        if query.get("field_issue_status") != "1":
            return node_page([])
        if query.get("page") == "2":
            return node_page([{}] * 12, last_page=2)
        return node_page([{}] * 100, last_page=2)

    return handler


class FakeTool:
    """Stands in for an ExternalTool and records when it is started and joined."""

    def __init__(self, name: str, metrics: dict, log: list[str]) -> None:
        self.name = name
        self.metrics = metrics
        self.log = log
        self.targets: list[Path] = []

    def null_metrics(self) -> dict:
        return {field: None for field in self.metrics}

    async def start(self, target: Path):
        self.targets.append(target)
        self.log.append(f"start:{self.name}")
        return self.name

    async def end(self, handle) -> dict:
        self.log.append(f"end:{self.name}")
        return dict(self.metrics)

    async def cancel(self, handle) -> None:
        self.log.append(f"cancel:{self.name}")


class UnlaunchableTool(FakeTool):
    async def start(self, target: Path):
        raise ToolLaunchError(self.name, "No such file or directory")


class FakeCoreDownload(CoreDownloadTool):
    def __init__(self) -> None:
        self.calls: list[str] = []

    async def run(self, major_version: str, work_dir: Path) -> Path:
        self.calls.append(major_version)
        core_dir = self.core_directory(major_version, work_dir)
        core_dir.mkdir(parents=True, exist_ok=True)
        return core_dir


def make_tools(log: list[str]) -> dict[str, FakeTool]:
    return {
        "drupal_check": FakeTool(
            "drupal_check",
            {"deprecation_errors": 0, "deprecation_file_errors": 0},
            log,
        ),
        "phpcs_drupal": FakeTool(
            "phpcs_drupal", {"phpcs_drupal_errors": 0, "phpcs_drupal_warnings": 0}, log
        ),
        "phpcs_compat": FakeTool(
            "phpcs_compat", {"phpcs_compat_errors": 0, "phpcs_compat_warnings": 0}, log
        ),
        "composer_validate": FakeTool(
            "composer_validate", {"composer_validate": "passes"}, log
        ),
    }


@pytest.fixture
def pipeline(tmp_path):
    """Run an Evaluator method against fake drupal.org, tools and downloads."""
    log: list[str] = []
    releases = list(RELEASES)
    failing: set[str] = set()
    registry = FakeRegistry(registry_handler(log, releases, failing))
    tools = make_tools(log)
    core_tool = FakeCoreDownload()

    async def fake_download(name, version, destination, client=None):
        log.append(f"download:{version}")
        project_path = destination / name
        project_path.mkdir(parents=True)
        return project_path

    def run(method: str, *args, **kwargs):
        async def go():
            async with registry.client() as http:
                evaluator = Evaluator(
                    client=DrupalOrgClient(http, use_cache=False),
                    work_dir=tmp_path / "work",
                    core_tool=core_tool,
                    analysis_tools=tools,
                )
                return await getattr(evaluator, method)(*args, **kwargs)

        with (
            patch("drupal_evaluator.core.download_project", side_effect=fake_download),
            patch(
                "drupal_evaluator.core.is_orca_integrated",
                new=AsyncMock(return_value=False),
            ),
        ):
            return asyncio.run(go())

    run.log = log
    run.releases = releases
    run.failing = failing
    run.registry = registry
    run.tools = tools
    run.core_tool = core_tool
    run.work_dir = tmp_path / "work"
    return run


def test_end_to_end_score(pipeline):
    """Test a full evaluation of a Drupal 8 branch."""
    report = pipeline("evaluate", "example", "8.x-1.x-dev")

    assert list(report) == list(FIELD_LABELS)
    assert report["title"] == "Example"
    assert report["starred"] == 1
    assert report["usage"] == 1200
    assert report["downloads"] is None
    assert report["recommended_version"] == "8.x-1.4"
    assert report["is_stable"] is True
    assert report["scanned_version"] == "8.x-1.x-dev"
    assert report["issues_total"] == 112
    assert report["issues_priority_critical"] == 0
    assert report["issues_status_fixed_last"] == "never"
    assert report["releases_total"] == 3
    assert report["releases_days_since"] == 1
    assert report["composer_validate"] == "passes"
    assert report["orca_integrated"] is False
    assert report["total_points"] == 60
    assert report["report_datetime"]


def test_end_to_end_score_with_ten_day_old_release(pipeline):
    """Test the score of a project whose only release is ten days old."""
    pipeline.releases[:] = [release_node("8.x-1.4", None, 10)]

    report = pipeline("evaluate", "example", "8.x-1.x-dev")

    assert report["releases_days_since"] == 10
    assert report["scored_points"] == pytest.approx(49.9)
    assert report["score"] == 83.17


def test_tools_overlap_with_statistics(pipeline):
    """Test that analysis tools run while issue statistics are gathered."""
    pipeline("evaluate", "example", "8.x-1.x-dev")
    log = pipeline.log

    first_start = log.index("start:drupal_check")
    last_start = log.index("start:composer_validate")
    first_end = log.index("end:drupal_check")

    assert log.index("download:8.x-1.x-dev") < first_start
    assert "registry" in log[last_start:first_end]
    assert "registry" not in log[first_start:last_start]
    assert [entry for entry in log if entry.startswith("end:")] == [
        "end:drupal_check",
        "end:phpcs_drupal",
        "end:phpcs_compat",
        "end:composer_validate",
    ]


def test_drupal7_skips_deprecation_scan(pipeline):
    """Test that Drupal 7 branches get no deprecation scan."""
    report = pipeline("evaluate", "example", "7.x-1.x-dev")

    assert "start:drupal_check" not in pipeline.log
    assert report["deprecation_errors"] is None
    assert report["deprecation_file_errors"] is None
    assert report["usage"] == 80
    assert report["recommended_version"] == "7.x-1.2"


def test_scan_stable_downloads_recommended_release(pipeline):
    """Test that scan-stable analyzes the recommended release."""
    report = pipeline(
        "evaluate", "example", "8.x-1.x-dev", EvaluationOptions(scan_stable=True)
    )

    assert report["scanned_version"] == "8.x-1.4"
    assert "download:8.x-1.4" in pipeline.log


def test_core_is_downloaded_once_per_run(pipeline):
    """Test that Drupal core is downloaded once per major version."""
    entries = [
        ManifestEntry("example", "8.x-1.x-dev"),
        ManifestEntry("example", "8.x-1.x-dev"),
    ]

    reports = pipeline("evaluate_many", entries)

    assert len(reports) == 2
    assert pipeline.core_tool.calls == ["8"]
    targets = pipeline.tools["phpcs_drupal"].targets
    contrib = pipeline.work_dir / "drupal8" / "web" / "modules" / "contrib"
    assert all(contrib in target.parents for target in targets)
    assert targets[0] != targets[1]


def test_skip_core_download(pipeline):
    """Test extracting into the projects directory when core is skipped."""
    pipeline(
        "evaluate",
        "example",
        "8.x-1.x-dev",
        EvaluationOptions(skip_core_download=True),
    )

    assert pipeline.core_tool.calls == []
    target = pipeline.tools["phpcs_drupal"].targets[0]
    assert pipeline.work_dir / "projects" in target.parents


def test_extract_directory_is_removed_after_evaluation(pipeline):
    """Test that the extracted project is deleted once the tools are done."""
    pipeline("evaluate", "example", "8.x-1.x-dev")
    pipeline("evaluate", "example", "8.x-1.x-dev")

    contrib = pipeline.work_dir / "drupal8" / "web" / "modules" / "contrib"
    assert list(contrib.iterdir()) == []
    assert not any(
        target.exists() for target in pipeline.tools["phpcs_drupal"].targets
    )


def test_launch_failure_cancels_started_tools(pipeline):
    """Test that tools already running are stopped when a later one cannot start."""
    pipeline.tools["phpcs_compat"] = UnlaunchableTool(
        "phpcs_compat", {"phpcs_compat_errors": 0}, pipeline.log
    )

    with pytest.raises(ToolLaunchError):
        pipeline("evaluate", "example", "8.x-1.x-dev")

    log = pipeline.log
    assert "cancel:drupal_check" in log
    assert "cancel:phpcs_drupal" in log
    assert "start:composer_validate" not in log
    assert not any(entry.startswith("end:") for entry in log)
    contrib = pipeline.work_dir / "drupal8" / "web" / "modules" / "contrib"
    assert list(contrib.iterdir()) == []


def test_registry_failure_cancels_running_tools(pipeline):
    """Test that a failing issue query stops every started tool."""
    pipeline.failing.add("project_issue")

    with pytest.raises(RegistryError):
        pipeline("evaluate", "example", "8.x-1.x-dev")

    log = pipeline.log
    assert [entry for entry in log if entry.startswith("cancel:")] == [
        "cancel:drupal_check",
        "cancel:phpcs_drupal",
        "cancel:phpcs_compat",
        "cancel:composer_validate",
    ]
    assert not any(entry.startswith("end:") for entry in log)


def test_unsupported_branch_fails_before_any_query(pipeline):
    """Test that an unsupported branch fails before querying drupal.org."""
    with pytest.raises(ConfigurationError):
        pipeline("evaluate", "example", "9.x-1.x-dev")
    assert pipeline.registry.queries == []


def test_core_compatibility_for():
    """Test mapping branches to core compatibility terms."""
    assert core_compatibility_for("8.x-1.x-dev") is CoreCompatibility.DRUPAL_8X
    assert core_compatibility_for("7.x-3.x") is CoreCompatibility.DRUPAL_7X
    with pytest.raises(ConfigurationError):
        core_compatibility_for("")


def test_evaluate_many_aborts_by_default(pipeline):
    """Test that a failing entry aborts the batch by default."""
    entries = [
        ManifestEntry("missing", "8.x-1.x-dev"),
        ManifestEntry("example", "8.x-1.x-dev"),
    ]

    with pytest.raises(ProjectNotFoundError):
        pipeline("evaluate_many", entries)


def test_evaluate_many_keep_going(pipeline):
    """Test that keep_going records the failure and continues."""
    entries = [
        ManifestEntry("missing", "8.x-1.x-dev"),
        ManifestEntry("example", "8.x-1.x-dev", {"scan-stable": True}),
    ]

    reports = pipeline("evaluate_many", entries, keep_going=True)

    assert reports[0]["name"] == "missing"
    assert "missing" in reports[0]["error"]
    assert reports[1]["scanned_version"] == "8.x-1.4"


def test_options_merge():
    """Test merging per-entry options onto the defaults."""
    defaults = EvaluationOptions(scan_stable=False, skip_core_download=True)

    merged = defaults.merge({"scan-stable": True, "skip_core_download": False})

    assert merged == EvaluationOptions(scan_stable=True, skip_core_download=False)
    assert defaults.merge(None) is defaults
    with pytest.raises(ConfigurationError, match="verbose"):
        defaults.merge({"verbose": True})


def test_load_manifest_list(tmp_path):
    """Test loading a manifest written as a list."""
    manifest = tmp_path / "projects.yml"
    manifest.write_text(
        """
- name: ctools
  branch: 8.x-3.x-dev
- name: views
  branch: 7.x-3.x-dev
  options:
    scan-stable: true
"""
    )

    entries = load_manifest(manifest)

    assert entries == [
        ManifestEntry("ctools", "8.x-3.x-dev", {}),
        ManifestEntry("views", "7.x-3.x-dev", {"scan-stable": True}),
    ]


def test_load_manifest_mapping(tmp_path):
    """Test loading a manifest written as a mapping."""
    manifest = tmp_path / "projects.yml"
    manifest.write_text(
        """
ctools:
  name: ctools
  branch: 8.x-3.x-dev
"""
    )

    assert load_manifest(manifest) == [ManifestEntry("ctools", "8.x-3.x-dev", {})]


@pytest.mark.parametrize(
    "content",
    [
        "- name: ctools\n",
        "- branch: 8.x-1.x-dev\n",
        "- just-a-string\n",
        "- name: ctools\n  branch: 8.x-1.x-dev\n  options: [scan-stable]\n",
        "42\n",
        "- [unclosed\n",
    ],
)
def test_load_manifest_rejects_malformed_entries(tmp_path, content):
    """Test that malformed manifests raise ConfigurationError."""
    manifest = tmp_path / "projects.yml"
    manifest.write_text(content)

    with pytest.raises(ConfigurationError):
        load_manifest(manifest)


def test_load_manifest_missing_file(tmp_path):
    """Test that a missing manifest raises ConfigurationError."""
    with pytest.raises(ConfigurationError):
        load_manifest(tmp_path / "nope.yml")
