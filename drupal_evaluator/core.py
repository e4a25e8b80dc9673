"""
Evaluation pipeline: gather registry data, run code analysis and score a
drupal.org project, one at a time or for a whole manifest.
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

import yaml
from rich.console import Console

from drupal_evaluator.config import (
    ConfigurationError,
    get_work_dir,
    is_verbose_enabled,
)
from drupal_evaluator.downloads import (
    download_project,
    is_orca_integrated,
    prepare_extract_dir,
)
from drupal_evaluator.drupal_org.client import DrupalOrgClient, Project
from drupal_evaluator.drupal_org.enums import CoreCompatibility
from drupal_evaluator.drupal_org.issues import IssueAggregator
from drupal_evaluator.drupal_org.releases import (
    find_recommended_release,
    summarize_releases,
)
from drupal_evaluator.external_tools.base import ExternalTool, ToolHandle
from drupal_evaluator.external_tools.composer_tools import (
    ComposerValidateTool,
    CoreDownloadTool,
)
from drupal_evaluator.external_tools.php_tools import DrupalCheckTool, PhpCsTool
from drupal_evaluator.scoring import calculate_score

console = Console(stderr=True)

# Report fields in output order, with their display labels
FIELD_LABELS: dict[str, str] = {
    "name": "Name",
    "title": "Title",
    "branch": "Branch",
    "score": "Score",
    "scored_points": "Scored points",
    "total_points": "Total points",
    "downloads": "Downloads",
    "security_advisory_coverage": "Security Advisory Coverage",
    "starred": "Starred",
    "usage": "Usage",
    "recommended_version": "Recommended version",
    "scanned_version": "Scanned version",
    "is_stable": "Is stable",
    "issues_total": "Total issues",
    "issues_priority_critical": "Priority Critical Issues",
    "issues_priority_major": "Priority Major Issues",
    "issues_priority_normal": "Priority Normal Issues",
    "issues_priority_minor": "Priority Minor Issues",
    "issues_category_bug": "Category Bug Issues",
    "issues_category_feature": "Category Feature Issues",
    "issues_category_support": "Category Support Issues",
    "issues_category_task": "Category Task Issues",
    "issues_category_plan": "Category Plan Issues",
    "issues_status_rtbc": "Status RTBC Issues",
    "issues_status_fixed_last": 'Last "Closed/fixed" issue date',
    "releases_total": "Total releases",
    "releases_last": "Last release date",
    "releases_days_since": "Days since last release",
    "deprecation_errors": "Deprecation errors",
    "deprecation_file_errors": "Deprecation file errors",
    "phpcs_drupal_errors": "PHPCS Drupal errors",
    "phpcs_drupal_warnings": "PHPCS Drupal warnings",
    "phpcs_compat_errors": "PHPCS compat errors",
    "phpcs_compat_warnings": "PHPCS compat warnings",
    "composer_validate": "Composer validation status",
    "orca_integrated": "ORCA Integrated",
    "report_datetime": "Report Date Time",
}

CORE_COMPATIBILITY_BY_MAJOR = {
    "7": CoreCompatibility.DRUPAL_7X,
    "8": CoreCompatibility.DRUPAL_8X,
}


class EvaluationOptions(NamedTuple):
    """Switches that change how a project is evaluated."""

    scan_stable: bool = False
    skip_core_download: bool = False

    def merge(self, overrides: dict[str, Any] | None) -> "EvaluationOptions":
        """
        Return a copy with per-entry overrides applied.

        Option names may use dashes or underscores (``scan-stable``).

        Raises:
            ConfigurationError: If an option name is unknown.
        """
        if not overrides:
            return self
        values = self._asdict()
        for key, value in overrides.items():
            field = str(key).replace("-", "_")
            if field not in values:
                raise ConfigurationError(f"Unknown option '{key}'")
            values[field] = bool(value)
        return EvaluationOptions(**values)


class ManifestEntry(NamedTuple):
    """One project to evaluate in a batch."""

    name: str
    branch: str
    options: dict[str, Any] | None = None


def core_compatibility_for(branch: str) -> CoreCompatibility:
    """
    Map a branch such as ``8.x-2.x-dev`` to its core compatibility term.

    Raises:
        ConfigurationError: If the major version is not 7 or 8.
    """
    term = CORE_COMPATIBILITY_BY_MAJOR.get(branch[:1])
    if term is None:
        raise ConfigurationError(
            f"Unsupported branch '{branch}': the major version must be 7 or 8"
        )
    return term


def _progress(message: str) -> None:
    if is_verbose_enabled():
        console.print(f"[dim]{message}[/dim]")


def load_manifest(path: Path | str) -> list[ManifestEntry]:
    """
    Read a YAML manifest of projects to evaluate.

    The document is either a list of entries or a mapping whose values are
    entries. Each entry needs ``name`` and ``branch`` and may carry an
    ``options`` mapping.

    Raises:
        ConfigurationError: If the file cannot be read or an entry is malformed.
    """
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read manifest {path}: {e}") from e

    if isinstance(document, dict):
        raw_entries = list(document.values())
    elif isinstance(document, list):
        raw_entries = document
    elif document is None:
        raw_entries = []
    else:
        raise ConfigurationError(f"Manifest {path} must be a list or a mapping")

    entries = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Manifest entry {index} is not a mapping")
        missing = [key for key in ("name", "branch") if not raw.get(key)]
        if missing:
            raise ConfigurationError(
                f"Manifest entry {index} is missing {', '.join(missing)}"
            )
        options = raw.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigurationError(
                f"Options of manifest entry {index} must be a mapping"
            )
        entries.append(ManifestEntry(str(raw["name"]), str(raw["branch"]), options))
    return entries


class Evaluator:
    """
    Runs the evaluation pipeline.

    One instance corresponds to one run: Drupal core is downloaded at most
    once per major version for the lifetime of the instance.
    """

    def __init__(
        self,
        client: DrupalOrgClient | None = None,
        work_dir: Path | None = None,
        core_tool: CoreDownloadTool | None = None,
        analysis_tools: dict[str, ExternalTool] | None = None,
    ) -> None:
        self.client = client or DrupalOrgClient()
        self.issues = IssueAggregator(self.client)
        self.work_dir = work_dir or get_work_dir()
        self.core_tool = core_tool or CoreDownloadTool()
        self.analysis_tools = analysis_tools or {
            "drupal_check": DrupalCheckTool(),
            "phpcs_drupal": PhpCsTool.drupal(),
            "phpcs_compat": PhpCsTool.compatibility(),
            "composer_validate": ComposerValidateTool(),
        }
        self._core_downloaded: set[str] = set()

    def _project_metadata(
        self, project: Project, name: str, branch: str
    ) -> dict[str, Any]:
        major_version = branch.replace("-dev", "")
        return {
            "name": name,
            "title": project.title,
            "branch": branch,
            # drupal.org no longer publishes download counts
            "downloads": None,
            "security_advisory_coverage": project.security_advisory_coverage,
            "starred": project.starred,
            "usage": project.usage.get(major_version),
        }

    async def _extract_parent(self, major: str, options: EvaluationOptions) -> Path:
        """Download core when needed and return where projects are extracted."""
        if not options.skip_core_download and major not in self._core_downloaded:
            _progress("Downloading Drupal core via Composer...")
            await self.core_tool.run(major, self.work_dir)
            self._core_downloaded.add(major)

        core_dir = self.core_tool.core_directory(major, self.work_dir)
        if core_dir.is_dir():
            return core_dir / "web" / "modules" / "contrib"
        return self.work_dir / "projects"

    async def _start_tools(
        self, project_path: Path, major: str
    ) -> dict[str, ToolHandle | None]:
        handles: dict[str, ToolHandle | None] = {}
        try:
            for key, tool in self.analysis_tools.items():
                # Deprecation scanning needs a Drupal 8 codebase
                if key == "drupal_check" and major != "8":
                    handles[key] = None
                    continue
                handles[key] = await tool.start(project_path)
        except ConfigurationError:
            await self._cancel_tools(handles)
            raise
        return handles

    async def _cancel_tools(self, handles: dict[str, ToolHandle | None]) -> None:
        for key, handle in handles.items():
            if handle is not None:
                await self.analysis_tools[key].cancel(handle)

    async def _end_tools(
        self, handles: dict[str, ToolHandle | None]
    ) -> dict[str, Any]:
        metrics: dict[str, Any] = {}
        for key, handle in handles.items():
            tool = self.analysis_tools[key]
            if handle is None:
                metrics.update(tool.null_metrics())
            else:
                _progress(f"Waiting for {tool.name} to finish...")
                metrics.update(await tool.end(handle))
        return metrics

    async def evaluate(
        self,
        name: str,
        branch: str,
        options: EvaluationOptions | None = None,
    ) -> dict[str, Any]:
        """
        Evaluate one project branch.

        Args:
            name: Project machine name, e.g. ``acquia_connector``.
            branch: Branch, e.g. ``8.x-1.x-dev``.
            options: Evaluation switches.

        Returns:
            The report, keyed by the fields of FIELD_LABELS.

        Raises:
            ConfigurationError: For unsupported branches or unlaunchable tools.
            RegistryError: If drupal.org rejects a query.
            ProjectNotFoundError: If the project does not exist.
            NoMatchingReleaseError: If no release matches the branch.
            DownloadError: If core or the project cannot be downloaded.
        """
        options = options or EvaluationOptions()
        core_compatibility = core_compatibility_for(branch)
        major = branch[0]

        _progress("Querying drupal.org for project metadata...")
        project = await self.client.get_project(name)
        metadata = self._project_metadata(project, name, branch)

        _progress("Querying drupal.org for project releases...")
        releases = await self.client.get_project_releases(project, core_compatibility)
        recommended = find_recommended_release(releases, major, branch, name)
        metadata["recommended_version"] = recommended.version
        metadata["is_stable"] = recommended.is_stable
        metadata["scanned_version"] = (
            recommended.version if options.scan_stable else branch
        )

        parent = await self._extract_parent(major, options)
        extract_dir = prepare_extract_dir(name, parent)
        try:
            _progress("Downloading project from Drupal.org...")
            project_path = await download_project(
                name, metadata["scanned_version"], extract_dir
            )

            _progress("Starting code analysis in background...")
            handles = await self._start_tools(project_path, major)

            try:
                _progress("Calculating issues statistics...")
                issue_stats = await self.issues.calculate_issue_statistics(
                    project, branch
                )
                _progress("Calculating release statistics...")
                release_stats = summarize_releases(releases)
            except Exception:
                await self._cancel_tools(handles)
                raise

            tool_metrics = await self._end_tools(handles)
        finally:
            shutil.rmtree(extract_dir, ignore_errors=True)

        metadata["orca_integrated"] = await is_orca_integrated(
            name, metadata["scanned_version"]
        )

        report = {**metadata, **issue_stats, **release_stats, **tool_metrics}
        score = calculate_score(report)
        report["scored_points"] = score.scored
        report["total_points"] = score.total
        report["score"] = score.percentage
        report["report_datetime"] = datetime.now(timezone.utc).isoformat()

        _progress("Done!")
        return {field: report.get(field) for field in FIELD_LABELS}

    async def evaluate_many(
        self,
        entries: list[ManifestEntry],
        defaults: EvaluationOptions | None = None,
        keep_going: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Evaluate manifest entries in order.

        Args:
            entries: Projects to evaluate.
            defaults: Options each entry's overrides are merged onto.
            keep_going: Record a failing entry as ``{name, branch, error}``
                and continue, instead of aborting the batch.

        Returns:
            One report per entry, in input order.
        """
        defaults = defaults or EvaluationOptions()
        reports = []
        for entry in entries:
            try:
                options = defaults.merge(entry.options)
                reports.append(await self.evaluate(entry.name, entry.branch, options))
            except Exception as e:
                if not keep_going:
                    raise
                console.print(
                    f"[yellow]Skipping {entry.name} {entry.branch}: {e}[/yellow]"
                )
                reports.append(
                    {"name": entry.name, "branch": entry.branch, "error": str(e)}
                )
        return reports

