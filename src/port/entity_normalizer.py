"""Entity normalizer port: pure transform into the canonical entry shape."""

from typing import Any, Protocol


class EntityNormalizer(Protocol):
    def __call__(self, entity: dict[str, Any]) -> dict[str, Any]: ...
