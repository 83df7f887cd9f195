"""Word version merger: reconciles a freshly streamed entry with known versions.

Versions can come from three places, in priority order:
    1. the metadata side channel ("versions" list)
    2. the structured entry itself ("versions" list)
    3. nothing: the fresh entry becomes the only version

The fresh entry either updates the version sharing its identifier (its fields
win) or is appended as a new tail version. Identifiers stay unique.
"""

import logging
from typing import Any

from domain.model.word import (
    MergedSummary,
    ParsingResult,
    entity_identifier,
    first_present,
)
from port.entity_normalizer import EntityNormalizer

logger = logging.getLogger(__name__)

# Keys of the metadata channel that describe versions rather than the entry
_VERSION_CONTROL_KEYS = ("versions", "activeVersionId")


def _non_empty_list(value: Any) -> list | None:
    if isinstance(value, list) and value:
        return value
    return None


def _candidate_versions(parsing: ParsingResult) -> list[Any]:
    metadata = parsing.metadata or {}
    parsed_entry = parsing.parsed_entry or {}
    return (
        _non_empty_list(metadata.get("versions"))
        or _non_empty_list(parsed_entry.get("versions"))
        or [parsing.entry]
    )


def _same_identifier(version: dict[str, Any], entry_id: Any) -> bool:
    if entry_id is None or entry_id == "":
        return False
    version_id = entity_identifier(version)
    if version_id is None:
        return False
    return str(version_id) == str(entry_id)


def _unique_by_identifier(versions: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop later versions repeating an identifier; versions without one are all kept."""
    seen = set()
    unique = []
    for version in versions:
        identifier = entity_identifier(version)
        if identifier is not None:
            if str(identifier) in seen:
                logger.debug("Skipping duplicate version", extra={"versionId": str(identifier)})
                continue
            seen.add(str(identifier))
        unique.append(version)
    return unique


def merge_versions(parsing: ParsingResult, normalize: EntityNormalizer) -> MergedSummary:
    """Produce the canonical version list, flattened metadata and active id."""
    entry = parsing.entry
    entry_id = entity_identifier(entry)

    def apply_flavor(version: dict[str, Any]) -> dict[str, Any]:
        normalized = normalize(version)
        return {**normalized, "flavor": first_present(normalized.get("flavor"), entry.get("flavor"))}

    candidates = []
    for version in _candidate_versions(parsing):
        if isinstance(version, dict):
            candidates.append(version)
        else:
            logger.debug("Skipping non-object version", extra={
                "version_type": type(version).__name__,
            })
    candidates = _unique_by_identifier(candidates)

    has_entry = any(
        _same_identifier(version, entry_id) or version is entry
        for version in candidates
    )
    if has_entry:
        versions = [
            apply_flavor({**version, **entry}) if _same_identifier(version, entry_id)
            else apply_flavor(version)
            for version in candidates
        ]
    else:
        versions = [apply_flavor(version) for version in candidates]
        versions.append(entry)

    metadata_base = {
        key: value
        for key, value in (parsing.metadata or {}).items()
        if key not in _VERSION_CONTROL_KEYS
    }
    entry_metadata = (parsing.parsed_entry or {}).get("metadata")
    metadata = {
        **metadata_base,
        **(entry_metadata if isinstance(entry_metadata, dict) else {}),
        "flavor": entry.get("flavor"),
    }

    active_version_id = None
    for candidate in (
        (parsing.metadata or {}).get("activeVersionId"),
        (parsing.parsed_entry or {}).get("activeVersionId"),
        entry_id,
    ):
        if candidate is not None:
            active_version_id = candidate
            break

    return MergedSummary(
        versions=versions,
        metadata=metadata,
        active_version_id=active_version_id,
    )
