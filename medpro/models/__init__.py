"""Data transfer models mirrored from the MedPro backend."""

from medpro.models.assistant import (
    ActionButton,
    ActionStyle,
    ActionType,
    AssistantContext,
    AssistantMessage,
    AssistantResponse,
    Attachment,
    ContextInfo,
    ContextSource,
    DocumentAnalysisResponse,
    Encounter,
    EncounterStatus,
    MessagesResponse,
    MessageType,
    Patient,
    PostMessageResponse,
    Session,
    SessionListResponse,
    SessionMessage,
    TranscriptionResult,
)
from medpro.models.appointment import (
    AppointmentData,
    RecentPatient,
    SelectedService,
    ServiceCoverageStatus,
)
from medpro.models.patient import EncounterWithDetails, HistoryEncounter
from medpro.models.auth import User

__all__ = [
    "ActionButton",
    "ActionStyle",
    "ActionType",
    "AssistantContext",
    "AssistantMessage",
    "AssistantResponse",
    "Attachment",
    "ContextInfo",
    "ContextSource",
    "DocumentAnalysisResponse",
    "Encounter",
    "EncounterStatus",
    "MessagesResponse",
    "MessageType",
    "Patient",
    "PostMessageResponse",
    "Session",
    "SessionListResponse",
    "SessionMessage",
    "TranscriptionResult",
    "AppointmentData",
    "RecentPatient",
    "SelectedService",
    "ServiceCoverageStatus",
    "EncounterWithDetails",
    "HistoryEncounter",
    "User",
]
