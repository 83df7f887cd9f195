"""In-memory implementation of WordStreamPort for testing."""

from collections.abc import AsyncIterator

from domain.model.word import StreamEvent, StreamEventKind
from port.word_stream import WordStreamCancelledError, WordStreamQuery


class FakeWordStreamAdapter:
    """Fake word stream that replays preconfigured events.

    When `error` is set it is raised after all events were delivered,
    simulating an upstream failure mid-stream. `closed` turns True once the
    stream finished or was closed by the consumer.
    """

    def __init__(
        self,
        events: list[StreamEvent] | None = None,
        error: Exception | None = None,
    ):
        self.events = events or []
        self.error = error
        self.queries: list[WordStreamQuery] = []
        self.delivered = 0
        self.closed = False

    async def stream_word(self, query: WordStreamQuery) -> AsyncIterator[StreamEvent]:
        self.queries.append(query)
        try:
            for event in self.events:
                if query.signal is not None and query.signal.is_set():
                    raise WordStreamCancelledError("stream cancelled by caller")
                if event.kind == StreamEventKind.CHUNK and query.on_chunk:
                    query.on_chunk(event.data or "")
                self.delivered += 1
                yield event
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True
