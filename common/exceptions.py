"""Exception taxonomy shared by ingestion, retrieval and chat.

Every error carries a stable ``error_code``, an optional underlying cause and
a free-form context mapping (document path, chunk index, collection, ...)
so that failures can be reported and resumed without guessing.
"""

from __future__ import annotations

from typing import Any


class DocChatError(Exception):
    """Base class for all project errors."""

    error_code: str = "DOCCHAT_ERR"

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"

    def to_dict(self) -> dict[str, Any]:
        """Structured form used for JSON error bodies and SSE error events."""
        result: dict[str, Any] = {
            "error": {
                "type": type(self).__name__,
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.context:
            result["context"] = self.context
        if self.cause is not None:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class ConfigurationError(DocChatError):
    error_code = "CONFIG_ERR"


class SourceError(DocChatError):
    """A document could not be read or its text extracted."""

    error_code = "SOURCE_ERR"


class GenerationError(DocChatError):
    """A generation model call failed or timed out."""

    error_code = "GENERATION_ERR"


class ExpansionError(GenerationError):
    """Context expansion of one chunk failed; aborts that document."""

    error_code = "EXPANSION_ERR"

    def __init__(
        self,
        message: str,
        *,
        path: str,
        chunk_index: int,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message, cause=cause, context={"path": path, "chunk_index": chunk_index}
        )
        self.path = path
        self.chunk_index = chunk_index


class EmbeddingError(DocChatError):
    error_code = "EMBEDDING_ERR"


class StoreError(DocChatError):
    error_code = "STORE_ERR"


class ConcurrentTurnError(DocChatError):
    """A session already has a turn in flight."""

    error_code = "CONCURRENT_TURN"
