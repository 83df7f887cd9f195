"""Word payload parser: resolves structured-vs-markdown once accumulation is done."""

import logging

from domain.model.word import (
    AccumulationResult,
    ParsingResult,
    StreamRequest,
    first_present,
)
from port.entity_normalizer import EntityNormalizer
from utils.json_parsing import parse_json_object

logger = logging.getLogger(__name__)


def parse_payload(
    accumulation: AccumulationResult,
    request: StreamRequest,
    normalize: EntityNormalizer,
) -> ParsingResult:
    """Build the normalized entry from the accumulated stream.

    A payload that parses to a JSON object is the entry itself; anything else
    is treated as markdown and wrapped into a minimal entry. Metadata is
    optional enrichment: when absent or malformed it is simply None.
    """
    parsed_entry = parse_json_object(accumulation.raw_payload)
    metadata = parse_json_object(accumulation.metadata_payload)

    if parsed_entry is not None:
        entry_base = parsed_entry
    else:
        entry_base = {
            "term": request.term,
            "language": request.language,
            "markdown": accumulation.raw_payload,
        }

    normalized = normalize(entry_base)
    flavor = first_present(
        normalized.get("flavor"),
        metadata.get("flavor") if metadata else None,
        request.flavor,
    )
    entry = {**normalized, "flavor": flavor}

    logger.debug("Stream payload parsed", extra={
        **request.log_context,
        "format": "json" if parsed_entry is not None else "markdown",
        "has_metadata": metadata is not None,
        "flavor": flavor,
    })
    return ParsingResult(entry=entry, metadata=metadata, parsed_entry=parsed_entry)
