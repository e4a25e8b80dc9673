"""External tool wrappers for analyzing downloaded projects."""

from drupal_evaluator.external_tools.base import (
    ExternalTool,
    ToolExecutionFailure,
    ToolHandle,
    ToolLaunchError,
    ToolResult,
)
from drupal_evaluator.external_tools.composer_tools import (
    ComposerValidateTool,
    CoreDownloadTool,
    ValidationOutcome,
)
from drupal_evaluator.external_tools.php_tools import DrupalCheckTool, PhpCsTool

__all__ = [
    "ComposerValidateTool",
    "CoreDownloadTool",
    "DrupalCheckTool",
    "ExternalTool",
    "PhpCsTool",
    "ToolExecutionFailure",
    "ToolHandle",
    "ToolLaunchError",
    "ToolResult",
    "ValidationOutcome",
]
