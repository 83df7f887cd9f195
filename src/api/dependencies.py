from functools import lru_cache

from adapter.external.sse_word_stream import HttpxWordStreamAdapter
from adapter.memory.word_store import InMemoryWordStore
from port.session_logger import SessionLogger
from port.word_store import WordStorePort
from port.word_stream import WordStreamPort
from utils.logging import LoggingSessionLogger


@lru_cache
def get_word_store() -> WordStorePort:
    """Process-wide word cache shared by all requests."""
    return InMemoryWordStore()


def get_word_stream() -> WordStreamPort:
    return HttpxWordStreamAdapter()


def get_session_logger() -> SessionLogger:
    return LoggingSessionLogger()
