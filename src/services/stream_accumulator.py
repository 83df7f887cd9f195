"""Stream accumulator: drains a word stream once and buffers what it delivered."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from domain.model.word import (
    AccumulationResult,
    StreamEventKind,
    StreamRequest,
    WordChunk,
)
from port.session_logger import SessionLogger
from port.word_stream import WordStreamPort, WordStreamQuery

logger = logging.getLogger(__name__)

CHUNK_TAG = "[StreamWordSession] chunk"


class StreamAccumulator:
    """Demultiplexes chunk and metadata events from a single stream pass.

    Chunks are concatenated in arrival order and re-emitted immediately so
    callers can render progress. At most one metadata payload is kept; a later
    metadata event replaces an earlier one.
    """

    def __init__(
        self,
        request: StreamRequest,
        word_stream: WordStreamPort,
        session_logger: SessionLogger,
    ):
        self.request = request
        self.word_stream = word_stream
        self.session_logger = session_logger
        self._parts: list[str] = []
        self._metadata_payload: str | None = None
        self._completed = False

    def _on_chunk(self, chunk: str) -> None:
        # Observability only: a broken logger must never break the stream
        try:
            self.session_logger.info(CHUNK_TAG, {**self.request.log_context, "chunk": chunk})
        except Exception as e:
            logger.warning("Chunk logging failed", extra={
                **self.request.log_context, "error": str(e),
            })

    async def collect(self) -> AsyncIterator[WordChunk]:
        """Pull every event from the transport, yielding chunks as they arrive."""
        query = WordStreamQuery.from_request(self.request, on_chunk=self._on_chunk)
        async with aclosing(self.word_stream.stream_word(query)) as events:
            async for event in events:
                if event.kind == StreamEventKind.METADATA:
                    self._metadata_payload = event.data
                    continue
                chunk = event.data or ""
                self._parts.append(chunk)
                yield WordChunk(chunk=chunk, language=self.request.language)
        self._completed = True

    @property
    def completed(self) -> bool:
        return self._completed

    def result(self) -> AccumulationResult:
        """Buffered payloads; only available once the transport is exhausted."""
        if not self._completed:
            raise RuntimeError("StreamAccumulator has not completed collection yet")
        return AccumulationResult(
            raw_payload="".join(self._parts),
            metadata_payload=self._metadata_payload,
        )
