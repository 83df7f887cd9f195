"""Default entity normalizer for dictionary entries."""

from typing import Any


def normalize_markdown_entity(entity: Any) -> dict[str, Any]:
    """Return a canonical shallow copy of a loosely-typed word entity.

    Non-dict input yields an empty entity. A markdown body gets uniform line
    endings; every other field is passed through untouched.
    """
    if not isinstance(entity, dict):
        return {}
    normalized = dict(entity)
    markdown = normalized.get("markdown")
    if isinstance(markdown, str):
        normalized["markdown"] = markdown.replace("\r\n", "\n").replace("\r", "\n")
    return normalized
