"""Word stream port: inbound transport delivering a lookup as typed events."""

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Protocol

from domain.model.word import StreamEvent, StreamRequest


class WordStreamError(Exception):
    """Base exception for word stream transport errors."""


class WordStreamHTTPError(WordStreamError):
    """Upstream answered the stream request with an error status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


class WordStreamTimeoutError(WordStreamError):
    """Upstream stream timed out."""


class WordStreamCancelledError(WordStreamError):
    """Caller cancelled the stream through its cancellation handle."""


@dataclass(frozen=True)
class WordStreamQuery:
    """Request fields handed to the transport for one lookup."""
    user_id: str
    term: str
    language: str
    flavor: str
    model: str | None = None
    token: str | None = None
    signal: asyncio.Event | None = None
    force_new: bool = False
    version_id: str | None = None
    capture_history: bool = True
    on_chunk: Callable[[str], None] | None = None

    @classmethod
    def from_request(
        cls,
        request: StreamRequest,
        on_chunk: Callable[[str], None] | None = None,
    ) -> 'WordStreamQuery':
        return cls(
            user_id=request.user_id,
            term=request.term,
            language=request.language,
            flavor=request.flavor,
            model=request.model,
            token=request.token,
            signal=request.signal,
            force_new=request.force_new,
            version_id=request.version_id,
            capture_history=request.capture_history,
            on_chunk=on_chunk,
        )


class WordStreamPort(Protocol):
    """Port for streaming a word lookup.

    Implementations call query.on_chunk for every chunk they emit and honor
    query.signal for cancellation. Errors propagate to the consumer unchanged.
    """

    def stream_word(self, query: WordStreamQuery) -> AsyncIterator[StreamEvent]: ...
