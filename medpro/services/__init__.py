"""Service clients for the MedPro backend."""

from medpro.services.api import ApiService
from medpro.services.assistant_api import AssistantApiService
from medpro.services.errors import (
    ApiError,
    AttachmentError,
    AuthenticationError,
    DocumentAnalysisError,
    TranscriptionError,
)

__all__ = [
    "ApiService",
    "AssistantApiService",
    "ApiError",
    "AttachmentError",
    "AuthenticationError",
    "DocumentAnalysisError",
    "TranscriptionError",
]
