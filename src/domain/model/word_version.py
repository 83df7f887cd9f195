"""Word version registry: domain rules for cached multi-version entries.

Keeps version identity, collection merging and active-version election in one
place so the store adapters only deal with persistence.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class WordCacheRecord:
    """All cached versions of one word entry."""
    versions: list[dict[str, Any]] = field(default_factory=list)
    active_version_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "versions": self.versions,
            "activeVersionId": self.active_version_id,
            "metadata": self.metadata,
        }


def normalize_identifier(value: Any) -> str | None:
    """Canonical string identifier, or None for missing/blank values."""
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def parse_timestamp(value: Any) -> float | None:
    """Epoch seconds for a datetime or ISO-8601 string, None if unusable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.timestamp()
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


def _rank_by_recency(versions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Newest createdAt first; undated versions last; ties keep list order."""
    def sort_key(indexed: tuple[int, dict[str, Any]]):
        index, version = indexed
        timestamp = parse_timestamp(version.get("createdAt"))
        if timestamp is None:
            return (1, 0.0, index)
        return (0, -timestamp, index)

    return [version for _, version in sorted(enumerate(versions), key=sort_key)]


class WordVersionRegistry:
    """Stateless helper applied by word stores on every write and read."""

    def normalize_versions(self, versions: list[Any] | None) -> list[dict[str, Any]]:
        normalized = []
        for index, version in enumerate(version for version in versions or [] if version):
            if not isinstance(version, dict):
                continue
            nested = version.get("metadata") if isinstance(version.get("metadata"), dict) else {}
            identifier = (
                normalize_identifier(version.get("id"))
                or normalize_identifier(version.get("versionId"))
                or normalize_identifier(nested.get("id"))
                or normalize_identifier(nested.get("versionId"))
                or f"auto-{index}"
            )
            normalized.append({**version, "id": identifier})
        return normalized

    def merge_version_collections(
        self,
        existing: list[dict[str, Any]],
        incoming: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Incoming versions first; same-id records merged with incoming fields winning."""
        if not incoming:
            return existing

        merged: dict[str, dict[str, Any]] = {}
        for version in incoming:
            key = version["id"]
            merged[key] = {**merged.get(key, {}), **version}
        for version in existing:
            key = version["id"]
            if key in merged:
                merged[key] = {**version, **merged[key]}
            else:
                merged[key] = dict(version)
        return list(merged.values())

    def merge_metadata(
        self,
        existing: dict[str, Any] | None,
        incoming: dict[str, Any] | None,
    ) -> dict[str, Any]:
        return {**(existing or {}), **(incoming or {})}

    def resolve_active_version_id(
        self,
        versions: list[dict[str, Any]],
        preferred_id: Any = None,
        current: WordCacheRecord | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Pick the active version: explicit preference, then current, then metadata, then newest."""
        if not versions:
            return None

        known_ids = {version["id"] for version in versions}
        metadata = metadata or {}
        prioritized = (
            normalize_identifier(preferred_id),
            normalize_identifier(current.active_version_id if current else None),
            normalize_identifier(metadata.get("latestVersionId")),
            normalize_identifier(metadata.get("activeVersionId")),
        )
        for candidate in prioritized:
            if candidate and candidate in known_ids:
                return candidate

        return _rank_by_recency(versions)[0]["id"]

    def select_version(
        self,
        record: WordCacheRecord | None,
        version_id: Any = None,
    ) -> dict[str, Any] | None:
        """Requested version, else the active one, else the most recently stored."""
        if record is None or not record.versions:
            return None

        preferred = normalize_identifier(version_id) or record.active_version_id
        if preferred:
            for version in record.versions:
                if version["id"] == preferred:
                    return version
        return record.versions[-1]


default_word_version_registry = WordVersionRegistry()
