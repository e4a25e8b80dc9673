"""
Release archive download and the downstream integration (ORCA) check.
"""

import tarfile
import tempfile
from pathlib import Path

import httpx

from drupal_evaluator.http_client import _get_async_http_client

ARCHIVE_BASE_URL = "https://ftp.drupal.org/files/projects"
CI_MANIFEST_URL = "https://git.drupalcode.org/project/{name}/raw/{version}/.travis.yml"

# Marker a project defines in its CI manifest when it is tested by ORCA
ORCA_MARKER = "ORCA_SUT_NAME"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_5) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/75.0.3770.100 Safari/537.36"
)


class DownloadError(Exception):
    """Raised when an archive or Drupal core could not be put in place."""

    def __init__(self, location: str, reason: str) -> None:
        self.location = location
        self.reason = reason
        super().__init__(f"{reason} ({location})")


def archive_url(name: str, version: str) -> str:
    return f"{ARCHIVE_BASE_URL}/{name}-{version}.tar.gz"


def prepare_extract_dir(name: str, parent: Path) -> Path:
    """Create a fresh directory under ``parent`` for one evaluation."""
    parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f"{name}-", dir=parent))


async def download_project(
    name: str,
    version: str,
    destination: Path,
    client: httpx.AsyncClient | None = None,
) -> Path:
    """
    Download and extract a release archive.

    Args:
        name: Project machine name.
        version: Release version or branch, e.g. ``8.x-2.x-dev``.
        destination: Directory the archive is extracted into.
        client: Optional httpx client. Defaults to the shared client.

    Returns:
        Path of the extracted project, ``destination / name``.

    Raises:
        DownloadError: If the archive cannot be fetched or extracted, or does
            not contain a top-level ``name`` directory.
    """
    url = archive_url(name, version)
    client = client or await _get_async_http_client()

    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.RequestError as e:
        raise DownloadError(url, f"Request failed: {e}") from e
    if response.status_code != 200:
        raise DownloadError(
            url, f"Archive not available ({response.status_code})"
        )

    destination.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(suffix=".tar.gz") as archive:
        archive.write(response.content)
        archive.flush()
        try:
            with tarfile.open(archive.name, mode="r:gz") as tar:
                tar.extractall(destination, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise DownloadError(url, f"Could not extract archive: {e}") from e

    project_path = destination / name
    if not project_path.is_dir():
        raise DownloadError(
            str(project_path), "Archive did not contain the project directory"
        )
    return project_path


async def is_orca_integrated(
    name: str, version: str, client: httpx.AsyncClient | None = None
) -> bool:
    """
    Check whether a project's CI manifest runs ORCA.

    Any request failure counts as not integrated.
    """
    url = CI_MANIFEST_URL.format(name=name, version=version.replace("-dev", ""))
    client = client or await _get_async_http_client()
    try:
        response = await client.get(
            url,
            follow_redirects=True,
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        response.raise_for_status()
    except (httpx.RequestError, httpx.HTTPStatusError):
        return False
    return ORCA_MARKER in response.text
