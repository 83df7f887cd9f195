"""Word streaming routes.

Endpoints:
- GET /words/stream: Stream a word lookup as SSE, then cache the merged result
- GET /words/entry: Get one cached version of a word entry
- GET /words/record: Get all cached versions of a word entry
"""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import StreamingResponse

from api.dependencies import get_session_logger, get_word_store, get_word_stream
from api.models import StorePayloadResponse, WordRecordResponse
from domain.model.word import DEFAULT_FLAVOR, DEFAULT_MODEL, StreamRequest
from port.session_logger import SessionLogger
from port.word_store import WordStorePort
from port.word_stream import WordStreamPort
from services.stream_word_session import StreamWordSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/words", tags=["words"])


def format_sse(data: str, event: str | None = None) -> str:
    """Encode one server-sent event; multi-line data becomes several data lines."""
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


async def relay_session(session: StreamWordSession, store: WordStorePort) -> AsyncIterator[str]:
    """Relay chunks as they arrive; store and announce the payload once complete."""
    try:
        async for chunk in session.stream():
            yield format_sse(chunk.chunk)
    except Exception as e:
        # The session already logged the failure; nothing is stored
        yield format_sse(str(e) or type(e).__name__, event="error")
        return

    payload = session.get_store_payload()
    store.save_payload(payload)
    logger.info("Word entry cached", extra={
        **session.request.log_context,
        "key": payload.key,
        "versionCount": len(payload.versions),
        "activeVersionId": payload.options.active_version_id,
    })
    body = StorePayloadResponse.model_validate(payload.to_dict())
    yield format_sse(body.model_dump_json(), event="done")


@router.get("/stream")
async def stream_word(
    user_id: str = Query(..., alias="userId", min_length=1),
    term: str = Query(..., min_length=1, max_length=100),
    language: str = Query(..., min_length=2, max_length=50),
    flavor: str = Query(DEFAULT_FLAVOR),
    model: str | None = Query(DEFAULT_MODEL),
    force_new: bool = Query(False, alias="forceNew"),
    version_id: str | None = Query(None, alias="versionId"),
    capture_history: bool = Query(True, alias="captureHistory"),
    token: str | None = Header(None, alias="X-USER-TOKEN"),
    word_stream: WordStreamPort = Depends(get_word_stream),
    store: WordStorePort = Depends(get_word_store),
    session_logger: SessionLogger = Depends(get_session_logger),
):
    """Stream a dictionary lookup.

    Each content chunk is relayed as an SSE data event. When the upstream
    stream completes, the merged entry is written to the word cache and sent
    as a final `done` event. Upstream failures end the stream with an `error`
    event and leave the cache untouched.
    """
    request = StreamRequest.create(
        user_id=user_id,
        term=term,
        language=language,
        flavor=flavor,
        model=model,
        token=token,
        force_new=force_new,
        version_id=version_id,
        capture_history=capture_history,
    )
    session = StreamWordSession(request, word_stream=word_stream, session_logger=session_logger)
    return StreamingResponse(
        relay_session(session, store),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-store"},
    )


@router.get("/entry")
async def get_entry(
    key: str = Query(..., min_length=1),
    version_id: str | None = Query(None, alias="versionId"),
    store: WordStorePort = Depends(get_word_store),
):
    """Get the requested (or active) version of a cached word entry."""
    entry = store.get_entry(key, version_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Word entry not found")
    return entry


@router.get("/record", response_model=WordRecordResponse)
async def get_record(
    key: str = Query(..., min_length=1),
    store: WordStorePort = Depends(get_word_store),
):
    """Get every cached version of a word entry."""
    record = store.get_record(key)
    if record is None:
        raise HTTPException(status_code=404, detail="Word entry not found")
    return WordRecordResponse(key=key, **record.to_dict())
