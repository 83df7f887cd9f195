"""Stream word session: orchestrates one streaming dictionary lookup.

Pipeline: accumulate (streaming) → parse → merge → completed
Any failure moves the session to FAILED; no partial payload is ever exposed.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from domain.model.errors import SessionAlreadyStartedError, SessionNotCompletedError
from domain.model.word import (
    AccumulationResult,
    MergedSummary,
    ParsingResult,
    SessionState,
    StoreOptions,
    StorePayload,
    StreamRequest,
    WordChunk,
)
from port.entity_normalizer import EntityNormalizer
from port.session_logger import SessionLogger
from port.word_stream import WordStreamPort
from services.stream_accumulator import StreamAccumulator
from services.word_payload_parser import parse_payload
from services.word_version_merger import merge_versions
from utils.logging import LoggingSessionLogger
from utils.markdown_normalizer import normalize_markdown_entity

logger = logging.getLogger(__name__)

LOG_PREFIX = "[StreamWordSession]"


class StreamWordSession:
    """Single-use session turning a chunked word stream into a store payload.

    Usage:
        session = StreamWordSession(request, word_stream=adapter)
        async for chunk in session.stream():
            render(chunk.chunk)
        store.save_payload(session.get_store_payload())

    stream() can be consumed exactly once. The transport is only asked for its
    next event after the previous chunk was taken by the caller, and
    cancellation is left entirely to request.signal.
    """

    def __init__(
        self,
        request: StreamRequest,
        word_stream: WordStreamPort,
        normalize: EntityNormalizer | None = None,
        session_logger: SessionLogger | None = None,
    ):
        if word_stream is None:
            raise ValueError("word_stream dependency is required")
        self.request = request
        self.word_stream = word_stream
        self.normalize = normalize or normalize_markdown_entity
        self.session_logger = session_logger or LoggingSessionLogger()
        self._state = SessionState.IDLE
        self._summary: MergedSummary | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    def _log(self, stage: str, **extra) -> None:
        self.session_logger.info(f"{LOG_PREFIX} {stage}", {**self.request.log_context, **extra})

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session transition", extra={
            **self.request.log_context, "from": self._state.value, "to": state.value,
        })
        self._state = state

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _start(self) -> StreamAccumulator:
        if self._state is not SessionState.IDLE:
            raise SessionAlreadyStartedError()
        self._transition(SessionState.ACCUMULATING)
        return StreamAccumulator(self.request, self.word_stream, self.session_logger)

    def _parse(self, accumulation: AccumulationResult) -> ParsingResult:
        self._transition(SessionState.PARSING)
        return parse_payload(accumulation, self.request, self.normalize)

    def _merge(self, parsing: ParsingResult) -> MergedSummary:
        self._transition(SessionState.MERGING)
        return merge_versions(parsing, self.normalize)

    def _complete(self, summary: MergedSummary) -> None:
        self._summary = summary
        self._transition(SessionState.COMPLETED)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def stream(self) -> AsyncIterator[WordChunk]:
        """Yield each chunk as it arrives, then materialize the merged result.

        Raises:
            SessionAlreadyStartedError: If the session was already streamed.
            Exception: Anything raised by the transport, re-raised unchanged.
        """
        accumulator = self._start()
        self._log("start")
        try:
            async with aclosing(accumulator.collect()) as chunks:
                async for chunk in chunks:
                    yield chunk
            parsing = self._parse(accumulator.result())
            self._complete(self._merge(parsing))
            self._log("end", versions=len(self._summary.versions))
        except Exception as e:
            self._transition(SessionState.FAILED)
            self._log("error", error=e)
            raise
        finally:
            # Early aclose() or task cancellation never completes the session
            if self._state is not SessionState.COMPLETED:
                self._state = SessionState.FAILED

    def get_store_payload(self) -> StorePayload:
        """Materialized payload for the word cache.

        Raises:
            SessionNotCompletedError: If stream() has not run to completion.
        """
        if self._state is not SessionState.COMPLETED or self._summary is None:
            raise SessionNotCompletedError()
        return StorePayload(
            key=self.request.key,
            versions=self._summary.versions,
            options=StoreOptions(
                active_version_id=self._summary.active_version_id,
                metadata=self._summary.metadata,
            ),
        )
