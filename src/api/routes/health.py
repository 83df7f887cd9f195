"""Health check endpoint."""

import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends

from api.dependencies import get_word_store
from port.word_store import WordStorePort

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(store: WordStorePort = Depends(get_word_store)):
    """Health check endpoint with dependency status."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        "services": {
            "word_store": {
                "status": "healthy",
                "type": type(store).__name__,
            },
        },
    }
