"""PHP static analysis tools installed under the tools directory."""

from pathlib import Path
from typing import Any

from drupal_evaluator.external_tools.base import (
    ExternalTool,
    ToolExecutionFailure,
    ToolResult,
    parse_json_output,
)


def _read_totals(tool: str, report: Any, keys: dict[str, str]) -> dict[str, Any]:
    """Pick counters out of a report's ``totals`` object."""
    totals = report.get("totals") if isinstance(report, dict) else None
    if not isinstance(totals, dict):
        raise ToolExecutionFailure(tool, "report has no totals")
    try:
        return {field: int(totals[key]) for field, key in keys.items()}
    except (KeyError, TypeError, ValueError) as e:
        raise ToolExecutionFailure(tool, f"malformed totals: {e}")


class DrupalCheckTool(ExternalTool):
    """Use drupal-check to count deprecated API usage (Drupal 8 code only)."""

    metric_fields = ("deprecation_errors", "deprecation_file_errors")

    @property
    def name(self) -> str:
        return "drupal-check"

    def build_command(self, target: Path) -> list[str]:
        return [
            "./vendor/bin/drupal-check",
            "--format=json",
            "--deprecations",
            "--no-interaction",
            "--no-ansi",
            "--no-progress",
            str(target),
        ]

    def parse(self, result: ToolResult) -> dict[str, Any]:
        report = parse_json_output(self.name, result)
        return _read_totals(
            self.name,
            report,
            {"deprecation_errors": "errors", "deprecation_file_errors": "file_errors"},
        )


class PhpCsTool(ExternalTool):
    """
    Use PHP_CodeSniffer with one coding standard.

    The same binary serves two checks, the Drupal coding standard and PHP
    version compatibility. Each instance reports under its own prefix.
    """

    DRUPAL_STANDARD = "./vendor/drupal/coder/coder_sniffer/Drupal"
    COMPAT_STANDARD = "./vendor/phpcompatibility/php-compatibility/PHPCompatibility"

    def __init__(self, standard: str, prefix: str) -> None:
        self.standard = standard
        self.prefix = prefix
        self.metric_fields = (f"{prefix}_errors", f"{prefix}_warnings")

    @classmethod
    def drupal(cls) -> "PhpCsTool":
        return cls(cls.DRUPAL_STANDARD, "phpcs_drupal")

    @classmethod
    def compatibility(cls) -> "PhpCsTool":
        return cls(cls.COMPAT_STANDARD, "phpcs_compat")

    @property
    def name(self) -> str:
        return f"phpcs ({Path(self.standard).name})"

    def build_command(self, target: Path) -> list[str]:
        return [
            "./vendor/bin/phpcs",
            str(target),
            f"--standard={self.standard}",
            "--report=json",
            "-q",
            "--no-colors",
        ]

    def parse(self, result: ToolResult) -> dict[str, Any]:
        # phpcs exits non-zero whenever it finds something; only the report counts
        report = parse_json_output(self.name, result)
        return _read_totals(
            self.name,
            report,
            {f"{self.prefix}_errors": "errors", f"{self.prefix}_warnings": "warnings"},
        )
