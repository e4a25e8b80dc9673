"""
drupal.org node API client.

All queries go through the node-listing endpoint documented at
https://www.drupal.org/drupalorg/docs/api. Besides field filters the
endpoint accepts the meta controls ``limit``, ``page``, ``sort`` and
``direction``.
"""

from enum import Enum
from typing import Any, NamedTuple

import httpx

from drupal_evaluator.cache import NODES_NAMESPACE, get_cached_response, save_response
from drupal_evaluator.config import is_cache_enabled
from drupal_evaluator.drupal_org.enums import CoreCompatibility, Vocabulary
from drupal_evaluator.drupal_org.releases import Release
from drupal_evaluator.http_client import _get_async_http_client

NODE_API_URL = "https://www.drupal.org/api-d7/node.json"

# Items per page returned by the node endpoint
PAGE_SIZE = 100


class RegistryError(Exception):
    """Raised when drupal.org answers a query with a non-success status."""

    def __init__(self, url: str, status_code: int | None, reason: str) -> None:
        self.url = url
        self.status_code = status_code
        self.reason = reason
        super().__init__(
            f"Request to {url} failed, returned {status_code} with reason: {reason}"
        )


class ProjectNotFoundError(Exception):
    """Raised when no project matches a machine name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No project with machine name {name} could be found.")


class NodeListResult(NamedTuple):
    """One page of a node listing."""

    items: list[dict[str, Any]]
    last_page_url: str | None = None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class Project(NamedTuple):
    """Snapshot of a project node."""

    nid: int
    machine_name: str
    title: str
    has_issue_queue: bool
    has_releases: bool
    security_advisory_coverage: str | None
    starred: int
    usage: dict[str, int]

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "Project":
        """Build a Project from a raw ``project_module`` (or similar) node."""
        stars = node.get("flag_project_star_user")
        # The API serializes an empty object as [], so only trust dicts here
        usage = node.get("project_usage")
        return cls(
            nid=int(node["nid"]),
            machine_name=node.get("field_project_machine_name", ""),
            title=node.get("title", ""),
            has_issue_queue=_as_bool(node.get("field_project_has_issue_queue")),
            has_releases=_as_bool(node.get("field_project_has_releases")),
            security_advisory_coverage=node.get("field_security_advisory_coverage"),
            starred=len(stars) if isinstance(stars, (list, dict)) else 0,
            usage=usage if isinstance(usage, dict) else {},
        )


def _normalize_filters(filters: dict[str, Any]) -> dict[str, str]:
    """Render filter values as query-string values, sorted by key."""
    normalized = {}
    for key in sorted(filters):
        value = filters[key]
        if isinstance(value, Enum):
            value = value.value
        normalized[key] = str(value)
    return normalized


class DrupalOrgClient:
    """Queries the drupal.org node endpoint, with transparent response caching."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        use_cache: bool | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            client: Optional httpx client. Defaults to the shared client.
            use_cache: Override the configured cache setting.
        """
        self._client = client
        self._use_cache = use_cache

    @property
    def use_cache(self) -> bool:
        if self._use_cache is not None:
            return self._use_cache
        return is_cache_enabled()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await _get_async_http_client()

    @staticmethod
    def build_url(filters: dict[str, Any]) -> str:
        """Return the full request URL for a set of filters."""
        return str(httpx.URL(NODE_API_URL, params=_normalize_filters(filters)))

    async def fetch_nodes(self, filters: dict[str, Any]) -> NodeListResult:
        """
        Fetch one page of nodes matching ``filters``.

        Args:
            filters: Field filters and meta controls (type, sort, page, ...).

        Returns:
            NodeListResult with the page items and the URL of the last page.

        Raises:
            RegistryError: If drupal.org does not answer with 200.
        """
        url = self.build_url(filters)

        payload = None
        if self.use_cache:
            payload = get_cached_response(NODES_NAMESPACE, url)

        if payload is None:
            client = await self._get_client()
            try:
                response = await client.get(url)
            except httpx.RequestError as e:
                raise RegistryError(url, None, str(e)) from e

            if response.status_code != 200:
                raise RegistryError(
                    str(response.url), response.status_code, response.reason_phrase
                )
            payload = response.json()
            if self.use_cache:
                save_response(NODES_NAMESPACE, url, payload)

        return NodeListResult(
            items=list(payload.get("list") or []),
            last_page_url=payload.get("last"),
        )

    async def get_project(self, machine_name: str) -> Project:
        """
        Fetch a project by machine name.

        Raises:
            ProjectNotFoundError: If no project has that machine name.
        """
        result = await self.fetch_nodes({"field_project_machine_name": machine_name})
        if not result.items:
            raise ProjectNotFoundError(machine_name)
        return Project.from_node(result.items[0])

    async def get_project_releases(
        self, project: Project, core_compatibility: CoreCompatibility
    ) -> list[Release]:
        """
        Fetch the releases of a project for one core compatibility term.

        Releases are requested newest first (``sort=created``,
        ``direction=DESC``); the list is returned in that order.

        Args:
            project: The project.
            core_compatibility: Core compatibility term to filter on.

        Returns:
            Releases, or an empty list for projects without releases.
        """
        if not project.has_releases:
            return []

        result = await self.fetch_nodes(
            {
                "field_release_project": project.nid,
                "type": "project_release",
                f"taxonomy_vocabulary_{Vocabulary.CORE_COMPATIBILITY.value}": (
                    core_compatibility
                ),
                "sort": "created",
                "direction": "DESC",
            }
        )
        return [Release.from_node(node) for node in result.items]
