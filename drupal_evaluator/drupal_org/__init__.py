"""
drupal.org registry access: project lookup, release selection and issue
queue statistics.
"""

from drupal_evaluator.drupal_org.client import (
    DrupalOrgClient,
    NodeListResult,
    Project,
    ProjectNotFoundError,
    RegistryError,
)
from drupal_evaluator.drupal_org.enums import (
    Category,
    CoreCompatibility,
    Priority,
    Status,
    Vocabulary,
)
from drupal_evaluator.drupal_org.issues import IssueAggregator
from drupal_evaluator.drupal_org.releases import (
    NoDevReleaseError,
    NoMatchingReleaseError,
    Release,
    find_dev_release,
    find_recommended_release,
    summarize_releases,
)

__all__ = [
    "Category",
    "CoreCompatibility",
    "DrupalOrgClient",
    "IssueAggregator",
    "NoDevReleaseError",
    "NoMatchingReleaseError",
    "NodeListResult",
    "Priority",
    "Project",
    "ProjectNotFoundError",
    "RegistryError",
    "Release",
    "Status",
    "Vocabulary",
    "find_dev_release",
    "find_recommended_release",
    "summarize_releases",
]
