"""FastAPI application entry point."""

import os
import sys
import logging
import tomllib
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# .env must be loaded before the SSE adapter reads WORDS_* at import time
load_dotenv()

# main.py is at <root>/src/api/main.py
_src_path = Path(__file__).parent.parent
sys.path.insert(0, str(_src_path))

from api.routes import health, words
from adapter.external.sse_word_stream import STREAM_TIMEOUT_SECONDS, WORDS_API_BASE_URL
from utils.logging import setup_structured_logging

setup_structured_logging()

logger = logging.getLogger(__name__)

SERVICE_NAME = "Word Stream API"


def _read_version(project_root: Path) -> str:
    """Project version from pyproject.toml (single source of truth)."""
    with open(project_root / "pyproject.toml", "rb") as f:
        return tomllib.load(f)["project"]["version"]


def _cors_settings(origins_env: str) -> tuple[list[str], bool]:
    """Allowed origins and whether credentials may be sent.

    Browsers reject credentials with a wildcard origin, so they are only
    allowed for an explicit comma-separated origin list.
    """
    if origins_env.strip() == "*":
        return ["*"], False
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    return origins, True


VERSION = _read_version(_src_path.parent)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log upstream settings on startup."""
    logger.info("Word stream upstream configured", extra={
        "baseUrl": WORDS_API_BASE_URL,
        "timeoutSeconds": STREAM_TIMEOUT_SECONDS,
        "version": VERSION,
    })
    yield
    logger.info("Word stream API shutting down")


app = FastAPI(
    title=SERVICE_NAME,
    description="Streams dictionary lookups and caches the merged word entries",
    version=VERSION,
    lifespan=lifespan,
)

cors_origins, allow_credentials = _cors_settings(os.getenv("CORS_ORIGINS", "*"))
if allow_credentials:
    logger.info("CORS configured with specific origins", extra={"origins": cors_origins})
else:
    logger.warning(
        "CORS configured with wildcard origin ('*'). "
        "For production, set CORS_ORIGINS to specific domains (e.g., 'https://app.example.com')"
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(words.router)


@app.get("/")
async def root():
    """Service name, version and the endpoints it exposes."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "status": "running",
        "endpoints": ["/words/stream", "/words/entry", "/words/record", "/health"],
    }


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    # Structured application logs replace uvicorn's access log
    uvicorn.run(app, host="0.0.0.0", port=port, access_log=False)
