"""JSON parsing utilities for streamed word payloads.

Parsing is strict: the stream is either a complete JSON document or free text,
so no attempt is made to dig JSON out of surrounding prose or code fences.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JsonParseResult:
    """Outcome of a strict parse: either a value or the reason it failed."""
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def try_parse_json(content: str | None) -> JsonParseResult:
    """Strictly parse content, returning the failure instead of raising."""
    if content is None:
        return JsonParseResult(error="no content")
    try:
        return JsonParseResult(value=json.loads(content))
    except (TypeError, ValueError) as e:
        return JsonParseResult(error=str(e))


def parse_json_object(content: str | None) -> dict | None:
    """Parse content into a JSON object, None for anything else.

    Primitives and arrays count as "not an object" just like malformed input.
    """
    result = try_parse_json(content)
    if not result.ok:
        logger.debug("Payload is not JSON", extra={
            "error": result.error,
            "content_preview": (content or "")[:200],
        })
        return None
    if not isinstance(result.value, dict):
        logger.debug("Payload is JSON but not an object", extra={
            "json_type": type(result.value).__name__,
        })
        return None
    return result.value
