"""Issue queue statistics for drupal.org projects."""

from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlparse

from drupal_evaluator.drupal_org.client import PAGE_SIZE, DrupalOrgClient, Project
from drupal_evaluator.drupal_org.enums import Category, Priority, Status

# Report field -> filter, for the per-priority and per-category breakdown
PRIORITY_FIELDS = {
    "issues_priority_critical": Priority.CRITICAL,
    "issues_priority_major": Priority.MAJOR,
    "issues_priority_normal": Priority.NORMAL,
    "issues_priority_minor": Priority.MINOR,
}
CATEGORY_FIELDS = {
    "issues_category_bug": Category.BUG_REPORT,
    "issues_category_feature": Category.FEATURE_REQUEST,
    "issues_category_support": Category.SUPPORT_REQUEST,
    "issues_category_task": Category.TASK,
    "issues_category_plan": Category.PLAN,
}


def page_count(last_page_url: str | None) -> int:
    """
    Read the page count from a listing's ``last`` URL.

    A missing URL or a URL without a ``page`` parameter means one page.
    """
    if not last_page_url:
        return 1
    pages = parse_qs(urlparse(last_page_url).query).get("page")
    if not pages:
        return 1
    try:
        return max(int(pages[0]), 1)
    except ValueError:
        return 1


class IssueAggregator:
    """Counts issues in a project's queue.

    Only counts are kept; individual issues are never materialized apart
    from the single most recent match of ``find_most_recent_by_status``.
    """

    def __init__(self, client: DrupalOrgClient) -> None:
        self.client = client

    def _base_filters(self, project: Project) -> dict[str, Any]:
        return {"field_project": project.nid, "type": "project_issue"}

    async def count_issues(self, project: Project, filters: dict[str, Any]) -> int:
        """
        Count the issues matching ``filters``.

        Only the first and the last page are fetched. Every page before the
        last one is assumed to hold exactly PAGE_SIZE issues.

        Args:
            project: The project whose queue is counted.
            filters: Issue field filters (status, priority, version, ...).

        Returns:
            Number of matching issues; 0 for projects without an issue queue.
        """
        if not project.has_issue_queue:
            return 0

        query = {**filters, **self._base_filters(project)}
        first_page = await self.client.fetch_nodes(query)
        num_pages = page_count(first_page.last_page_url)

        if num_pages > 1:
            last_page = await self.client.fetch_nodes({**query, "page": num_pages})
            return (num_pages - 1) * PAGE_SIZE + len(last_page.items)
        return len(first_page.items)

    async def count_open_issues(
        self, project: Project, base_filters: dict[str, Any] | None = None
    ) -> int:
        """
        Count open issues, summing one status at a time.

        Args:
            project: The project whose queue is counted.
            base_filters: Filters applied on top of each open status.
        """
        total = 0
        for status in Status.open_statuses():
            filters = {**(base_filters or {}), "field_issue_status": status}
            total += await self.count_issues(project, filters)
        return total

    async def find_most_recent_by_status(
        self, project: Project, status: Status
    ) -> dict[str, Any] | None:
        """Return the most recently changed issue with ``status``, if any."""
        if not project.has_issue_queue:
            return None

        result = await self.client.fetch_nodes(
            {
                **self._base_filters(project),
                "field_issue_status": status,
                "sort": "changed",
                "direction": "DESC",
            }
        )
        return result.items[0] if result.items else None

    async def calculate_issue_statistics(
        self, project: Project, branch: str
    ) -> dict[str, Any]:
        """
        Collect the issue fields of the report for one branch.

        Args:
            project: The project.
            branch: Issue version to scope counts to, e.g. ``8.x-2.x-dev``.

        Returns:
            Open issue totals by priority and category, the RTBC count and
            the date of the last closed/fixed issue.
        """
        version_filter = {"field_issue_version": branch}
        stats: dict[str, Any] = {
            "issues_total": await self.count_open_issues(project, version_filter),
        }

        for field, priority in PRIORITY_FIELDS.items():
            stats[field] = await self.count_open_issues(
                project, {**version_filter, "field_issue_priority": priority}
            )
        for field, category in CATEGORY_FIELDS.items():
            stats[field] = await self.count_open_issues(
                project, {**version_filter, "field_issue_category": category}
            )

        stats["issues_status_rtbc"] = await self.count_issues(
            project, {**version_filter, "field_issue_status": Status.RTBC}
        )

        latest_fixed = await self.find_most_recent_by_status(
            project, Status.CLOSED_FIXED
        )
        if latest_fixed and latest_fixed.get("changed"):
            changed = datetime.fromtimestamp(
                int(latest_fixed["changed"]), tz=timezone.utc
            )
            stats["issues_status_fixed_last"] = changed.isoformat()
        else:
            stats["issues_status_fixed_last"] = "never"

        return stats
