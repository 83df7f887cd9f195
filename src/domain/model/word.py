# domain/model/word.py

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_FLAVOR = "BILINGUAL"
DEFAULT_MODEL = os.getenv("WORDS_DEFAULT_MODEL", "DOUBAO")

# Bumped whenever the cached entry shape changes
WORD_CACHE_VERSION = "md1"


def word_cache_key(
    term: str,
    language: str,
    flavor: str | None = DEFAULT_FLAVOR,
    model: str | None = DEFAULT_MODEL,
) -> str:
    """Build the cache key a streamed entry is materialized under."""
    return f"{language}:{flavor or DEFAULT_FLAVOR}:{term}:{model or ''}:{WORD_CACHE_VERSION}"


def first_present(*candidates: Any) -> Any:
    """Return the first candidate that is neither None nor an empty string."""
    for candidate in candidates:
        if candidate is not None and candidate != "":
            return candidate
    return None


def entity_identifier(entity: dict[str, Any]) -> Any:
    """Identifier of a word entity: its id, falling back to versionId."""
    identifier = entity.get("id")
    if identifier is None:
        identifier = entity.get("versionId")
    return identifier


class SessionState(str, Enum):
    """Lifecycle of a StreamWordSession."""
    IDLE = 'idle'
    ACCUMULATING = 'accumulating'
    PARSING = 'parsing'
    MERGING = 'merging'
    COMPLETED = 'completed'
    FAILED = 'failed'


class StreamEventKind(str, Enum):
    """Kinds of events produced by a word stream transport."""
    CHUNK = 'chunk'
    METADATA = 'metadata'


# ── Value Objects ────────────────────────────────────────


@dataclass(frozen=True)
class StreamRequest:
    """One streaming lookup, created by the caller and never mutated."""
    user_id: str
    term: str
    language: str
    key: str
    flavor: str = DEFAULT_FLAVOR
    model: str | None = DEFAULT_MODEL
    token: str | None = None
    signal: asyncio.Event | None = None
    force_new: bool = False
    version_id: str | None = None
    capture_history: bool = True

    @staticmethod
    def create(
        user_id: str,
        term: str,
        language: str,
        flavor: str | None = None,
        model: str | None = DEFAULT_MODEL,
        token: str | None = None,
        signal: asyncio.Event | None = None,
        force_new: bool = False,
        version_id: str | None = None,
        capture_history: bool = True,
        key: str | None = None,
    ) -> 'StreamRequest':
        """Factory method: derives the cache key when the caller has none."""
        resolved_flavor = flavor or DEFAULT_FLAVOR
        return StreamRequest(
            user_id=user_id,
            term=term,
            language=language,
            key=key or word_cache_key(term, language, resolved_flavor, model),
            flavor=resolved_flavor,
            model=model,
            token=token,
            signal=signal,
            force_new=force_new,
            version_id=version_id,
            capture_history=capture_history,
        )

    @property
    def log_context(self) -> dict:
        """Common fields for structured session logging."""
        return {"userId": self.user_id, "term": self.term}


@dataclass(frozen=True)
class StreamEvent:
    """A single transport event: a content chunk or the metadata side channel."""
    kind: StreamEventKind
    data: str | None = None

    @classmethod
    def chunk(cls, data: str) -> 'StreamEvent':
        return cls(StreamEventKind.CHUNK, data)

    @classmethod
    def metadata(cls, data: str) -> 'StreamEvent':
        return cls(StreamEventKind.METADATA, data)


@dataclass(frozen=True)
class WordChunk:
    """Chunk re-emitted to the caller while the stream is still running."""
    chunk: str
    language: str


@dataclass(frozen=True)
class AccumulationResult:
    """Everything the transport delivered, concatenated in arrival order."""
    raw_payload: str
    metadata_payload: str | None = None


@dataclass
class ParsingResult:
    """Normalized entry plus the raw structures it was derived from."""
    entry: dict[str, Any]
    metadata: dict[str, Any] | None = None
    parsed_entry: dict[str, Any] | None = None


@dataclass
class MergedSummary:
    """Reconciled version list, flattened metadata and elected active version."""
    versions: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    active_version_id: Any = None


@dataclass(frozen=True)
class StoreOptions:
    active_version_id: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StorePayload:
    """Materialized result handed to the word cache exactly once per session."""
    key: str
    versions: list[dict[str, Any]]
    options: StoreOptions

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape consumed by the cache."""
        return {
            "key": self.key,
            "versions": self.versions,
            "options": {
                "activeVersionId": self.options.active_version_id,
                "metadata": self.options.metadata,
            },
        }
