"""SSE word stream adapter: implements WordStreamPort over the words HTTP API.

The backend answers GET /api/words/stream with a text/event-stream body:
    event: metadata   one optional JSON document describing known versions
    data: ...         content chunks (plain text, or a completion envelope)
    event: error      upstream failure; the message is in data
    data: [DONE]      end of stream
"""

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

import httpx

from domain.model.word import StreamEvent
from port.word_stream import (
    WordStreamCancelledError,
    WordStreamError,
    WordStreamHTTPError,
    WordStreamQuery,
    WordStreamTimeoutError,
)

logger = logging.getLogger(__name__)

WORDS_API_BASE_URL = os.getenv("WORDS_API_BASE_URL", "http://localhost:8080")
STREAM_TIMEOUT_SECONDS = float(os.getenv("WORDS_STREAM_TIMEOUT_SECONDS", "60"))
WORDS_STREAM_PATH = "/api/words/stream"
DONE_MARKER = "[DONE]"

# Keys searched, in order, when flattening completion envelope content
_TEXT_KEYS = ("text", "content", "segments", "messages", "message")


# ── SSE framing ──────────────────────────────────────────────


@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Group raw SSE lines into events. Events without data are dropped."""
    event_name = "message"
    data_lines: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield ServerSentEvent(event=event_name, data="\n".join(data_lines))
            event_name, data_lines = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value.strip() or "message"
        elif field == "data":
            data_lines.append(value)

    if data_lines:
        yield ServerSentEvent(event=event_name, data="\n".join(data_lines))


async def _until_cancelled(
    lines: AsyncIterator[str], signal: asyncio.Event | None,
) -> AsyncIterator[str]:
    """Pass lines through until `signal` is set, even while a read is pending."""
    if signal is None:
        async for line in lines:
            yield line
        return

    waiter = asyncio.ensure_future(signal.wait())
    try:
        while True:
            if signal.is_set():
                raise WordStreamCancelledError("stream cancelled by caller")
            next_line = asyncio.ensure_future(anext(lines))
            await asyncio.wait({next_line, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not next_line.done():
                next_line.cancel()
                await asyncio.gather(next_line, return_exceptions=True)
                raise WordStreamCancelledError("stream cancelled by caller")
            try:
                line = next_line.result()
            except StopAsyncIteration:
                return
            yield line
    finally:
        waiter.cancel()


# ── Completion envelope flattening ───────────────────────────


def _flatten_text(node: Any) -> str:
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(_flatten_text(item) for item in node)
    if isinstance(node, dict):
        for key in _TEXT_KEYS:
            text = _flatten_text(node.get(key))
            if text:
                return text
    return ""


def extract_chunk_text(data: str) -> str:
    """Plain text carried by one data line.

    OpenAI-style completion envelopes ({"choices": [{"delta": ...}]}) are
    unwrapped; an envelope without text yields "". Anything else, including a
    fragment of the word entry JSON itself, is returned verbatim.
    """
    try:
        payload = json.loads(data)
    except ValueError:
        return data
    if not isinstance(payload, dict) or not isinstance(payload.get("choices"), list):
        return data
    choices = payload["choices"]
    if not choices or not isinstance(choices[0], dict):
        return ""
    return _flatten_text(choices[0].get("delta"))


# ── Adapter ──────────────────────────────────────────────────


def build_query_params(query: WordStreamQuery) -> dict[str, str]:
    params = {
        "userId": query.user_id,
        "term": query.term,
        "language": query.language,
    }
    if query.flavor:
        params["flavor"] = query.flavor
    if query.model:
        params["model"] = query.model
    if query.force_new:
        params["forceNew"] = "true"
    if query.version_id:
        params["versionId"] = query.version_id
    params["captureHistory"] = "true" if query.capture_history else "false"
    return params


class HttpxWordStreamAdapter:
    """Adapter that streams word lookups from the words API using httpx."""

    def __init__(
        self,
        base_url: str = WORDS_API_BASE_URL,
        timeout: float = STREAM_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def stream_word(self, query: WordStreamQuery) -> AsyncIterator[StreamEvent]:
        """Stream one lookup as chunk/metadata events.

        Raises:
            WordStreamHTTPError: Upstream answered with status >= 400.
            WordStreamTimeoutError: Upstream timed out.
            WordStreamCancelledError: query.signal was set, also while a read is pending.
            WordStreamError: Upstream sent an error event or the connection failed.
        """
        log_ctx = {"userId": query.user_id, "term": query.term}
        headers = {"Accept": "text/event-stream"}
        if query.token:
            headers["X-USER-TOKEN"] = query.token

        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream(
                "GET",
                f"{self.base_url}{WORDS_STREAM_PATH}",
                params=build_query_params(query),
                headers=headers,
            ) as response:
                if response.status_code >= 400:
                    raise WordStreamHTTPError(response.status_code)
                logger.info("[streamWord] start", extra=log_ctx)

                lines = _until_cancelled(response.aiter_lines(), query.signal)
                async with aclosing(lines):
                    async for sse in iter_sse_events(lines):
                        if query.signal is not None and query.signal.is_set():
                            raise WordStreamCancelledError("stream cancelled by caller")
                        if sse.event == "error":
                            raise WordStreamError(sse.data)
                        if sse.data == DONE_MARKER:
                            break
                        if sse.event == "metadata":
                            logger.debug("[streamWord] metadata", extra={**log_ctx, "data": sse.data})
                            yield StreamEvent.metadata(sse.data)
                            continue
                        text = extract_chunk_text(sse.data)
                        if not text:
                            continue
                        if query.on_chunk:
                            query.on_chunk(text)
                        yield StreamEvent.chunk(text)

                logger.info("[streamWord] end", extra=log_ctx)
        except httpx.TimeoutException as e:
            logger.error("[streamWord] error", extra={**log_ctx, "error": str(e)})
            raise WordStreamTimeoutError(str(e)) from e
        except httpx.HTTPError as e:
            logger.error("[streamWord] error", extra={**log_ctx, "error": str(e)})
            raise WordStreamError(str(e)) from e
        finally:
            if self._client is None:
                await client.aclose()
