"""
Exception hierarchy for the Document Chat RAG core.

    DocChatError                (base - catch-all for any docchat error)
    +-- InputError              (bad caller input; never retried)
    +-- ProviderUnavailableError (remote embedding/generation unreachable)
    +-- DimensionMismatchError  (vectors of different lengths compared)
    +-- ExtractionError         (a parser failed on supported content)

Every error carries an optional ``provider_name`` so log lines show which
external service was involved, e.g. ``[gemini] API key not configured``.
"""

from typing import Optional


class DocChatError(Exception):
    """Base exception for all docchat errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: Optional[str] = None,
    ):
        self._message = message
        self._provider_name = provider_name
        super().__init__(message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> Optional[str]:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class InputError(DocChatError, ValueError):
    """Raised for empty questions, empty text, unsupported files and bad parameters."""

    def __init__(self, message: str = "Invalid input", provider_name: Optional[str] = None):
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(DocChatError):
    """Raised when a remote embedding or generation capability cannot be used."""

    def __init__(
        self,
        message: str = "External provider is unavailable",
        provider_name: Optional[str] = None,
    ):
        super().__init__(message=message, provider_name=provider_name)


class DimensionMismatchError(DocChatError, ValueError):
    """Raised when two vectors (or a vector and the index) differ in length."""

    def __init__(self, expected: int, actual: int, context: str = "vector"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Dimension mismatch for {context}: expected {expected}, got {actual}"
        )


class ExtractionError(DocChatError):
    """Raised when text extraction fails for a supported file type."""

    def __init__(self, message: str = "Text extraction failed", provider_name: Optional[str] = None):
        super().__init__(message=message, provider_name=provider_name)
