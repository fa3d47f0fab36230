"""Latest-version resolution and version formatting.

Pure functions with no network dependency. The Registry does not guarantee
the order of the versions endpoint, so selection is always numeric.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from flowsync.exceptions import NoVersionsFound
from flowsync.models.registry import VersionMeta


def latest(versions: Iterable[VersionMeta]) -> VersionMeta:
    """Return the entry with the highest ``version`` number.

    Raises:
        NoVersionsFound: If ``versions`` is empty.
    """
    versions = list(versions)
    if not versions:
        raise NoVersionsFound("Flow has no versions")
    return max(versions, key=lambda meta: meta.version)


def sort_versions(versions: Iterable[VersionMeta]) -> list[VersionMeta]:
    """Return versions newest first."""
    return sorted(versions, key=lambda meta: meta.version, reverse=True)


def format_timestamp(epoch_millis: int | None) -> str:
    if epoch_millis is None:
        return "unknown"
    moment = datetime.fromtimestamp(epoch_millis / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_version(meta: VersionMeta, is_latest: bool = False) -> str:
    """One-line description of a version for listings and commit messages."""
    parts = [f"Version {meta.version}" + (" (LATEST)" if is_latest else "")]
    parts.append(format_timestamp(meta.timestamp))
    if meta.author:
        parts.append(meta.author)
    parts.append(meta.comments or "No comment")
    return " | ".join(parts)
