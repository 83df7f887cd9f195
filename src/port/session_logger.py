"""Session logger port: structured lifecycle logging for stream sessions."""

from typing import Any, Protocol


class SessionLogger(Protocol):
    def info(self, tag: str, context: dict[str, Any]) -> None: ...
