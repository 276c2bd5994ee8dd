"""Exceptions raised by the MedPro service clients."""

from typing import Any, Optional


class ApiError(Exception):
    """Non-2xx response (or transport failure) from the backend."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r})"


class AuthenticationError(ApiError):
    """Missing, rejected or expired credentials."""


class TranscriptionError(ApiError):
    """The /ai/transcribe hand-off failed."""


class DocumentAnalysisError(ApiError):
    """The /ai/analyze-attachment call failed."""


class AttachmentError(ValueError):
    """A picked file cannot be sent (missing, empty, too large, wrong type)."""
