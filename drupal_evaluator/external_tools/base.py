"""Base class for external command-line tools run against downloaded code."""

import asyncio
import json
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, NamedTuple

from rich.console import Console

from drupal_evaluator.config import (
    ConfigurationError,
    get_tool_timeout,
    get_tools_dir,
    is_verbose_enabled,
)

console = Console(stderr=True)


class ToolExecutionFailure(Exception):
    """Raised when a tool ran but its output could not be turned into metrics."""

    def __init__(self, tool: str, reason: str, stderr: str = "") -> None:
        self.tool = tool
        self.reason = reason
        self.stderr = stderr
        super().__init__(f"{tool}: {reason}")


class ToolLaunchError(ConfigurationError):
    """Raised when a tool's executable cannot be started at all."""

    def __init__(self, tool: str, reason: str) -> None:
        self.tool = tool
        self.reason = reason
        super().__init__(f"Could not launch {tool}: {reason}")


class ToolResult(NamedTuple):
    """Captured outcome of a finished tool process."""

    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False


class ToolHandle(NamedTuple):
    """A tool process that was started but not yet joined."""

    tool: "ExternalTool"
    target: Path
    process: asyncio.subprocess.Process
    output: "asyncio.Task[tuple[bytes, bytes]]"


class ExternalTool(ABC):
    """
    A command-line tool that turns a source tree into report metrics.

    Tools are run in two steps so several can work concurrently:
    ``start`` launches the process and returns immediately, ``end`` waits
    for it and parses its output. Output pipes are drained from the moment
    the process is started.
    """

    # Report fields produced by the tool, all None when it yields nothing
    metric_fields: tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name used in diagnostics."""

    @abstractmethod
    def build_command(self, target: Path) -> list[str]:
        """Return the argument vector for analyzing ``target``."""

    @abstractmethod
    def parse(self, result: ToolResult) -> dict[str, Any]:
        """
        Turn a finished run into metrics.

        Raises:
            ToolExecutionFailure: If the output is unusable.
        """

    def working_directory(self, target: Path) -> Path:
        """Directory the tool runs in. Defaults to the tools directory."""
        return get_tools_dir()

    def is_available(self, target: Path | None = None) -> bool:
        """Check if the tool's executable can be found."""
        executable = self.build_command(target or Path("."))[0]
        if "/" in executable:
            cwd = self.working_directory(target or Path("."))
            return (cwd / executable).exists()
        return shutil.which(executable) is not None

    def timeout(self) -> int:
        return get_tool_timeout()

    def null_metrics(self) -> dict[str, Any]:
        return {field: None for field in self.metric_fields}

    async def start(self, target: Path) -> ToolHandle:
        """
        Launch the tool against ``target`` without waiting for it.

        Raises:
            ToolLaunchError: If the executable cannot be started.
        """
        command = self.build_command(target)
        cwd = self.working_directory(target)
        if is_verbose_enabled():
            console.print(f"[dim]Running {' '.join(command)} in {cwd}[/dim]")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolLaunchError(self.name, str(e)) from e

        output = asyncio.create_task(
            asyncio.wait_for(process.communicate(), timeout=self.timeout())
        )
        return ToolHandle(tool=self, target=target, process=process, output=output)

    async def end(self, handle: ToolHandle) -> dict[str, Any]:
        """
        Wait for a started tool and return its metrics.

        A timeout or unusable output yields null metrics; the reason is
        reported when verbose output is enabled.
        """
        try:
            stdout, stderr = await handle.output
            result = ToolResult(
                returncode=handle.process.returncode,
                stdout=stdout.decode(errors="replace"),
                stderr=stderr.decode(errors="replace"),
            )
        except asyncio.TimeoutError:
            if handle.process.returncode is None:
                handle.process.kill()
                await handle.process.wait()
            result = ToolResult(
                returncode=handle.process.returncode,
                stdout="",
                stderr="",
                timed_out=True,
            )

        if result.timed_out:
            self._report(f"timed out after {self.timeout()}s")
            return self.null_metrics()

        try:
            return self.parse(result)
        except ToolExecutionFailure as e:
            self._report(e.reason, e.stderr or result.stderr)
            return self.null_metrics()

    async def cancel(self, handle: ToolHandle) -> None:
        """Stop a started tool whose result is no longer wanted."""
        handle.output.cancel()
        if handle.process.returncode is None:
            handle.process.kill()
            await handle.process.wait()
        await asyncio.gather(handle.output, return_exceptions=True)

    async def run(self, target: Path) -> dict[str, Any]:
        """Start the tool and wait for its metrics."""
        return await self.end(await self.start(target))

    def _report(self, reason: str, stderr: str = "") -> None:
        if not is_verbose_enabled():
            return
        console.print(f"[yellow]{self.name}: {reason}[/yellow]")
        if stderr.strip():
            console.print(stderr.strip(), markup=False, highlight=False)


def parse_json_output(tool: str, result: ToolResult) -> Any:
    """
    Decode a tool's JSON report from stdout.

    Raises:
        ToolExecutionFailure: If stdout is empty or not JSON.
    """
    if not result.stdout.strip():
        raise ToolExecutionFailure(tool, "no output", result.stderr)
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ToolExecutionFailure(tool, f"invalid JSON output: {e}", result.stderr)
