"""In-memory implementation of WordStorePort.

Applies the WordVersionRegistry rules on every write so repeated lookups of
the same key accumulate versions instead of replacing them.
"""

import logging
from typing import Any

from domain.model.word import StorePayload
from domain.model.word_version import (
    WordCacheRecord,
    WordVersionRegistry,
    default_word_version_registry,
    normalize_identifier,
)

logger = logging.getLogger(__name__)


class InMemoryWordStore:
    def __init__(self, registry: WordVersionRegistry | None = None):
        self.registry = registry or default_word_version_registry
        self.entries: dict[str, WordCacheRecord] = {}

    def set_versions(
        self,
        key: str,
        versions: list[dict[str, Any]],
        active_version_id: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if not key:
            return

        normalized = self.registry.normalize_versions(versions)
        if not normalized:
            self.entries.pop(key, None)
            return

        current = self.entries.get(key)
        merged_versions = (
            self.registry.merge_version_collections(current.versions, normalized)
            if current else normalized
        )
        merged_metadata = self.registry.merge_metadata(
            current.metadata if current else {}, metadata,
        )
        self.entries[key] = WordCacheRecord(
            versions=merged_versions,
            active_version_id=self.registry.resolve_active_version_id(
                merged_versions,
                preferred_id=active_version_id,
                current=current,
                metadata=merged_metadata,
            ),
            metadata=merged_metadata,
        )
        logger.debug("Word versions stored", extra={
            "key": key,
            "versionCount": len(merged_versions),
            "activeVersionId": self.entries[key].active_version_id,
        })

    def save_payload(self, payload: StorePayload) -> None:
        self.set_versions(
            payload.key,
            payload.versions,
            active_version_id=payload.options.active_version_id,
            metadata=payload.options.metadata,
        )

    def get_entry(self, key: str, version_id: Any = None) -> dict[str, Any] | None:
        return self.registry.select_version(self.entries.get(key), version_id)

    def get_record(self, key: str) -> WordCacheRecord | None:
        return self.entries.get(key)

    def set_active_version(self, key: str, version_id: Any) -> None:
        record = self.entries.get(key)
        if record is None:
            return
        record.active_version_id = normalize_identifier(version_id)

    def remove_versions(self, key: str, version_ids: Any = None) -> None:
        """Remove some versions of a key, or the whole key when no ids are given."""
        record = self.entries.get(key)
        if record is None:
            return
        if version_ids is None:
            del self.entries[key]
            return

        ids = version_ids if isinstance(version_ids, (list, tuple, set)) else [version_ids]
        removed = {normalize_identifier(i) for i in ids} - {None}
        remaining = [v for v in record.versions if v["id"] not in removed]
        if not remaining:
            del self.entries[key]
            return

        active = record.active_version_id
        if active in removed:
            active = self.registry.resolve_active_version_id(
                remaining, metadata=record.metadata,
            )
        self.entries[key] = WordCacheRecord(
            versions=remaining,
            active_version_id=active,
            metadata=record.metadata,
        )

    def clear(self) -> None:
        self.entries.clear()
