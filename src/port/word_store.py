"""Word store port: cache receiving materialized stream payloads."""

from typing import Any, Protocol

from domain.model.word import StorePayload
from domain.model.word_version import WordCacheRecord


class WordStorePort(Protocol):
    def set_versions(
        self,
        key: str,
        versions: list[dict[str, Any]],
        active_version_id: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    def save_payload(self, payload: StorePayload) -> None: ...

    def get_entry(self, key: str, version_id: Any = None) -> dict[str, Any] | None: ...

    def get_record(self, key: str) -> WordCacheRecord | None: ...

    def set_active_version(self, key: str, version_id: Any) -> None: ...

    def remove_versions(self, key: str, version_ids: Any = None) -> None: ...

    def clear(self) -> None: ...
