"""Composer-based tools: manifest validation and Drupal core download."""

import asyncio
import shutil
from enum import Enum
from pathlib import Path
from typing import Any

from drupal_evaluator.config import is_verbose_enabled
from drupal_evaluator.downloads import DownloadError
from drupal_evaluator.external_tools.base import (
    ExternalTool,
    ToolLaunchError,
    ToolResult,
    console,
)


class ValidationOutcome(str, Enum):
    """Outcome of ``composer validate --strict``, by exit code."""

    PASSES = "passes"
    WARNINGS = "warnings"
    ERRORS = "errors"
    NULL = "null"

    @classmethod
    def from_exit_code(cls, code: int | None) -> "ValidationOutcome | None":
        """Map an exit code to an outcome; unknown codes map to None."""
        return _EXIT_CODES.get(code)


_EXIT_CODES = {
    0: ValidationOutcome.PASSES,
    1: ValidationOutcome.WARNINGS,
    2: ValidationOutcome.ERRORS,
    3: ValidationOutcome.NULL,
}


class ComposerValidateTool(ExternalTool):
    """Use composer to validate the project's composer.json.

    Only the exit code is interpreted; output is ignored.
    """

    metric_fields = ("composer_validate",)

    @property
    def name(self) -> str:
        return "composer validate"

    def build_command(self, target: Path) -> list[str]:
        return ["composer", "validate", "--strict"]

    def working_directory(self, target: Path) -> Path:
        return target

    def parse(self, result: ToolResult) -> dict[str, Any]:
        outcome = ValidationOutcome.from_exit_code(result.returncode)
        return {"composer_validate": outcome.value if outcome else None}


class CoreDownloadTool:
    """Use composer to create a Drupal project that analysis tools can bootstrap."""

    @property
    def name(self) -> str:
        return "composer create-project"

    def build_command(self, major_version: str, work_dir: Path) -> list[str]:
        return [
            "composer",
            "create-project",
            f"drupal-composer/drupal-project:{major_version}.x-dev",
            f"drupal{major_version}",
            "--no-interaction",
            "--no-ansi",
            "--stability=dev",
            f"--working-dir={work_dir}",
        ]

    def core_directory(self, major_version: str, work_dir: Path) -> Path:
        return work_dir / f"drupal{major_version}"

    async def run(self, major_version: str, work_dir: Path) -> Path:
        """
        Download Drupal core into ``work_dir`` and wait for it.

        Args:
            major_version: Drupal major version, e.g. ``"8"``.
            work_dir: Directory that receives ``drupal{major_version}``.

        Returns:
            Path of the created Drupal project.

        Raises:
            ToolLaunchError: If composer cannot be started.
            DownloadError: If composer exits with a non-zero status.
        """
        core_dir = self.core_directory(major_version, work_dir)
        # composer create-project refuses a non-empty target directory
        shutil.rmtree(core_dir, ignore_errors=True)
        work_dir.mkdir(parents=True, exist_ok=True)
        command = self.build_command(major_version, work_dir)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(work_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolLaunchError(self.name, str(e)) from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            if is_verbose_enabled():
                console.print(
                    stderr.decode(errors="replace").strip(),
                    markup=False,
                    highlight=False,
                )
            raise DownloadError(str(core_dir), "Failed to download Drupal core")
        return core_dir
