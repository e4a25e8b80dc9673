"""
Release selection for drupal.org projects.

Release lists are scanned in the order the caller provides. Callers that
need "newest first" must request it from the registry (``sort=created``,
``direction=DESC``); the list is never reversed or re-sorted here.
"""

from datetime import datetime, timezone
from typing import Any, NamedTuple

SECONDS_PER_DAY = 60 * 60 * 24


class NoMatchingReleaseError(Exception):
    """Raised when no release matches the requested major version."""

    kind = "release"

    def __init__(self, project: str | None, version: str) -> None:
        self.project = project
        self.version = version
        super().__init__(f"No {self.kind} of {project or 'project'} matches {version}.")


class NoDevReleaseError(NoMatchingReleaseError):
    """Raised when a project has no ``dev`` release for a major version."""

    kind = "dev release"


class Release(NamedTuple):
    """A ``project_release`` node."""

    version: str
    version_extra: str | None
    version_major: str | None
    created: int
    nid: int | None = None

    @property
    def is_stable(self) -> bool:
        """A release without a version qualifier (alpha, beta, rc, dev)."""
        return self.version_extra is None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "Release":
        major = node.get("field_release_version_major")
        nid = node.get("nid")
        return cls(
            version=node.get("field_release_version", ""),
            version_extra=node.get("field_release_version_extra"),
            version_major=str(major) if major is not None else None,
            created=int(node.get("created") or 0),
            nid=int(nid) if nid is not None else None,
        )


def normalize_major_version(token: str) -> str:
    """Turn ``"8"`` or ``"8.x"`` into the ``"8.x"`` version prefix."""
    token = token.strip()
    return token if token.endswith(".x") else f"{token}.x"


def branch_minor_version(branch: str) -> str | None:
    """
    Return the minor version digit encoded in a branch string.

    ``8.x-2.x-dev`` encodes ``2`` at position 4.
    """
    if len(branch) <= 4:
        return None
    return branch[4]


def _matches(release: Release, major_version: str, minor_version: str | None) -> bool:
    if release.version[:3] != major_version:
        return False
    return minor_version is None or release.version_major == minor_version


def find_recommended_release(
    releases: list[Release],
    major_version: str,
    branch: str | None = None,
    project: str | None = None,
) -> Release:
    """
    Pick the recommended release for a major version.

    The first stable release matching the major version (and, when
    ``branch`` is given, the branch's minor version) wins. Without a stable
    match the first matching unstable release is returned.

    Args:
        releases: Releases in scan order.
        major_version: Major version token, e.g. ``"8"`` or ``"8.x"``.
        branch: Optional branch, e.g. ``"8.x-2.x-dev"``, to scope the match.
        project: Project name, used in the error message.

    Returns:
        The selected release.

    Raises:
        NoMatchingReleaseError: If no release matches at all.
    """
    prefix = normalize_major_version(major_version)
    minor = branch_minor_version(branch) if branch else None

    for release in releases:
        if release.is_stable and _matches(release, prefix, minor):
            return release

    for release in releases:
        if _matches(release, prefix, minor):
            return release

    raise NoMatchingReleaseError(project, branch or prefix)


def find_dev_release(
    releases: list[Release],
    major_version: str,
    project: str | None = None,
) -> Release:
    """
    Pick the ``dev`` release for a major version.

    Raises:
        NoDevReleaseError: If the project has no such release.
    """
    prefix = normalize_major_version(major_version)
    for release in releases:
        if release.version_extra == "dev" and release.version[:3] == prefix:
            return release
    raise NoDevReleaseError(project, prefix)


def summarize_releases(
    releases: list[Release], now: datetime | None = None
) -> dict[str, Any]:
    """
    Summarize a release list for the report.

    Args:
        releases: Releases of the project.
        now: Reference time, defaults to the current UTC time.

    Returns:
        ``releases_total``, ``releases_last`` (ISO timestamp of the newest
        release) and ``releases_days_since`` (whole days since then).
    """
    if not releases:
        return {
            "releases_total": 0,
            "releases_last": None,
            "releases_days_since": None,
        }

    now = now or datetime.now(timezone.utc)
    last_release = max(releases, key=lambda release: release.created)
    last_created = datetime.fromtimestamp(last_release.created, tz=timezone.utc)
    days_since = round((now - last_created).total_seconds() / SECONDS_PER_DAY)

    return {
        "releases_total": len(releases),
        "releases_last": last_created.isoformat(),
        "releases_days_since": days_since,
    }
