"""Stream one word lookup from a running words backend.

Prints chunks as they arrive, then the materialized store payload as JSON.
Manual use only (not collected by pytest).

Usage:
    PYTHONPATH=src python scripts/stream_word.py hello --language ENGLISH [--flavor BILINGUAL]
"""

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

load_dotenv()

from adapter.external.sse_word_stream import HttpxWordStreamAdapter, WORDS_API_BASE_URL
from domain.model.word import DEFAULT_FLAVOR, DEFAULT_MODEL, StreamRequest
from services.stream_word_session import StreamWordSession
from utils.logging import setup_structured_logging


async def run(args: argparse.Namespace) -> int:
    request = StreamRequest.create(
        user_id=args.user_id,
        term=args.term,
        language=args.language,
        flavor=args.flavor,
        model=args.model,
        token=args.token,
        force_new=args.force_new,
        version_id=args.version_id,
        capture_history=not args.no_history,
    )
    session = StreamWordSession(
        request,
        word_stream=HttpxWordStreamAdapter(base_url=args.base_url),
    )

    async for chunk in session.stream():
        print(chunk.chunk, end="", flush=True)
    print()

    payload = session.get_store_payload()
    print(json.dumps(payload.to_dict(), ensure_ascii=False, indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("term")
    parser.add_argument("--language", default="ENGLISH")
    parser.add_argument("--flavor", default=DEFAULT_FLAVOR)
    parser.add_argument("--model", default=DEFAULT_MODEL)
    parser.add_argument("--user-id", default="cli")
    parser.add_argument("--token")
    parser.add_argument("--version-id")
    parser.add_argument("--force-new", action="store_true")
    parser.add_argument("--no-history", action="store_true")
    parser.add_argument("--base-url", default=WORDS_API_BASE_URL)
    parser.add_argument("--log", action="store_true", help="emit structured JSON logs to stderr")
    args = parser.parse_args()

    if args.log:
        setup_structured_logging()

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"stream failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
