"""
Cache management for the Drupal project evaluator.

Registry responses are cached on disk, keyed by the full request URL, so
repeated evaluations of the same project do not hit drupal.org again.
Each namespace (e.g. ``nodes``) is one gzip-compressed JSON file.
"""

import gzip
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from drupal_evaluator.config import get_cache_dir, get_cache_ttl

NODES_NAMESPACE = "nodes"


def _get_cache_path(namespace: str) -> Path:
    """Get the cache file path for a namespace."""
    return get_cache_dir() / f"{namespace}.json.gz"


def _read_cache_file(cache_path: Path) -> dict[str, Any]:
    with gzip.open(cache_path, "rt", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def is_cache_valid(entry: dict[str, Any]) -> bool:
    """
    Check if a cache entry is still within its TTL.

    Args:
        entry: Cache entry dict with cache_metadata.

    Returns:
        True if the entry is fresh, False otherwise.
    """
    metadata = entry.get("cache_metadata")
    if not metadata or "fetched_at" not in metadata:
        return False

    try:
        fetched_at = datetime.fromisoformat(metadata["fetched_at"])
        ttl_seconds = metadata.get("ttl_seconds", get_cache_ttl())

        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)

        age_seconds = (datetime.now(timezone.utc) - fetched_at).total_seconds()
        return age_seconds < ttl_seconds
    except (ValueError, TypeError):
        return False


def load_cache(namespace: str) -> dict[str, Any]:
    """
    Load the valid entries of a cache namespace.

    Args:
        namespace: Cache namespace (file stem).

    Returns:
        Dictionary of key -> entry, expired entries filtered out.
    """
    cache_path = _get_cache_path(namespace)
    if not cache_path.exists():
        return {}

    try:
        all_data = _read_cache_file(cache_path)
    except (json.JSONDecodeError, OSError, EOFError):
        # Corrupted cache - behave as empty
        return {}

    return {key: entry for key, entry in all_data.items() if is_cache_valid(entry)}


def get_cached_response(namespace: str, key: str) -> Any | None:
    """
    Return the cached payload for a key, or None when absent or expired.

    Args:
        namespace: Cache namespace.
        key: Cache key (the full request URL for registry queries).
    """
    entry = load_cache(namespace).get(key)
    if entry is None:
        return None
    return entry.get("payload")


def save_cache(namespace: str, data: dict[str, Any], merge: bool = True) -> None:
    """
    Save entries to a cache namespace.

    Args:
        namespace: Cache namespace.
        data: Dictionary of key -> entry. Entries without cache_metadata get
            stamped with the current time and TTL.
        merge: If True, merge with existing cache, dropping expired
            entries. If False, replace entirely.
    """
    cache_dir = get_cache_dir()
    cache_dir.mkdir(parents=True, exist_ok=True)
    cache_path = _get_cache_path(namespace)

    existing_data: dict[str, Any] = {}
    if merge and cache_path.exists():
        try:
            existing_data = {
                key: entry
                for key, entry in _read_cache_file(cache_path).items()
                if is_cache_valid(entry)
            }
        except (json.JSONDecodeError, OSError, EOFError):
            existing_data = {}

    now = datetime.now(timezone.utc).isoformat()
    ttl = get_cache_ttl()
    for entry in data.values():
        if "cache_metadata" not in entry:
            entry["cache_metadata"] = {
                "fetched_at": now,
                "ttl_seconds": ttl,
            }

    merged_data = {**existing_data, **data}
    with gzip.open(cache_path, "wt", encoding="utf-8") as f:
        json.dump(merged_data, f, ensure_ascii=False, sort_keys=True)


def save_response(namespace: str, key: str, payload: Any) -> None:
    """Store a single response payload under ``key``."""
    save_cache(namespace, {key: {"payload": payload}})


def clear_cache(namespace: str | None = None) -> int:
    """
    Clear cache for one or all namespaces.

    Args:
        namespace: Specific namespace to clear, or None to clear all.

    Returns:
        Number of cache files cleared.
    """
    cache_dir = get_cache_dir()
    if not cache_dir.exists():
        return 0

    if namespace:
        cache_path = _get_cache_path(namespace)
        if cache_path.exists():
            cache_path.unlink()
            return 1
        return 0

    cleared = 0
    for cache_file in cache_dir.glob("*.json.gz"):
        cache_file.unlink()
        cleared += 1
    return cleared


def get_cache_stats() -> dict[str, Any]:
    """
    Get cache statistics.

    Returns:
        Dictionary with cache statistics, broken down per namespace.
    """
    cache_dir = get_cache_dir()

    if not cache_dir.exists():
        return {
            "cache_dir": str(cache_dir),
            "exists": False,
            "total_entries": 0,
            "valid_entries": 0,
            "expired_entries": 0,
            "namespaces": {},
        }

    total_entries = 0
    valid_entries = 0
    namespace_stats = {}

    for cache_file in sorted(cache_dir.glob("*.json.gz")):
        namespace = cache_file.name.removesuffix(".json.gz")
        try:
            data = _read_cache_file(cache_file)
        except (json.JSONDecodeError, OSError, EOFError):
            continue

        ns_total = len(data)
        ns_valid = sum(1 for entry in data.values() if is_cache_valid(entry))

        total_entries += ns_total
        valid_entries += ns_valid
        namespace_stats[namespace] = {
            "total": ns_total,
            "valid": ns_valid,
            "expired": ns_total - ns_valid,
        }

    return {
        "cache_dir": str(cache_dir),
        "exists": True,
        "total_entries": total_entries,
        "valid_entries": valid_entries,
        "expired_entries": total_entries - valid_entries,
        "namespaces": namespace_stats,
    }
