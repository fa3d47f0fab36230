"""Registry-side records: buckets, flows and version metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _identifier(raw: dict[str, Any]) -> str:
    value = raw.get("identifier") or raw.get("id")
    if not value:
        raise ValueError(f"Registry object has no identifier: {sorted(raw)}")
    return str(value)


@dataclass(frozen=True)
class Bucket:
    """A Registry container grouping related flows."""

    id: str
    name: str
    description: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Bucket:
        return cls(
            id=_identifier(raw),
            name=raw.get("name") or "Unknown",
            description=raw.get("description") or "",
        )


@dataclass(frozen=True)
class Flow:
    """A named, versioned process-group definition stored in one bucket."""

    id: str
    name: str
    bucket_id: str
    description: str = ""
    modified_timestamp: int | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any], bucket_id: str = "") -> Flow:
        return cls(
            id=_identifier(raw),
            name=raw.get("name") or "Unknown",
            bucket_id=str(raw.get("bucketIdentifier") or bucket_id),
            description=raw.get("description") or "",
            modified_timestamp=raw.get("modifiedTimestamp"),
        )


@dataclass(frozen=True)
class VersionMeta:
    """Metadata for one immutable, numbered snapshot of a flow.

    ``timestamp`` is epoch milliseconds as reported by the Registry.
    """

    version: int
    comments: str = ""
    timestamp: int | None = None
    author: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> VersionMeta:
        if "version" not in raw:
            raise ValueError("Version metadata has no 'version' field")
        # bool is an int subclass; reject it explicitly
        if isinstance(raw["version"], bool):
            raise ValueError(f"Invalid version number: {raw['version']!r}")
        timestamp = raw.get("timestamp")
        return cls(
            version=int(raw["version"]),
            comments=raw.get("comments") or "",
            timestamp=int(timestamp) if timestamp is not None else None,
            author=raw.get("author") or "",
        )
