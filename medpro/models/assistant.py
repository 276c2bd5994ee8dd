"""Pydantic models for the assistant conversation API (v1 ask + v2 sessions)."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


class ApiModel(BaseModel):
    """Base for backend DTOs: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SessionChannel(str, Enum):
    WEB = "web"
    WHATSAPP = "whatsapp"
    APP = "app"


class MessageType(str, Enum):
    TEXT = "text"
    ACTION = "action"
    ERROR = "error"
    AUDIO = "audio"


class ActionType(str, Enum):
    PRESCRIPTION_SIGN = "prescription-sign"
    PRESCRIPTION_SEND = "prescription-send"
    NAVIGATE_PATIENT = "navigate-patient"
    NAVIGATE_ENCOUNTER = "navigate-encounter"
    ANALYZE_DOCUMENT = "analyze-document"


class ActionStyle(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    OUTLINE = "outline"
    DANGER = "danger"


class ContextSource(str, Enum):
    API = "api"
    NAVIGATION = "navigation"
    USER = "user"


class EncounterStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    IN_PROGRESS = "IN_PROGRESS"


# ---------- domain records ----------


class Patient(ApiModel):
    id: str
    name: str
    cpf: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None


class Encounter(ApiModel):
    id: str
    patient_id: str = Field("", alias="patientId")
    date: str = Field(default_factory=utc_now_iso)
    status: EncounterStatus = EncounterStatus.OPEN
    type: Optional[str] = None
    notes: Optional[str] = None


class Prescription(ApiModel):
    justcreated: bool = False
    pdf_base64: Optional[str] = Field(None, alias="pdfBase64")
    id: Optional[str] = None


class AssistantContext(ApiModel):
    """Context the backend attaches to an assistant reply."""

    patient_id: Optional[str] = Field(None, alias="patientId")
    encounter_id: Optional[str] = Field(None, alias="encounterId")
    prescription: Optional[Prescription] = None

    @property
    def is_empty(self) -> bool:
        return not (self.patient_id or self.encounter_id or self.prescription)


class ContextInfo(ApiModel):
    patient: Optional[Patient] = None
    encounter: Optional[Encounter] = None
    timestamp: datetime = Field(default_factory=utc_now)
    source: ContextSource = ContextSource.NAVIGATION


class ActionButton(ApiModel):
    """A follow-up action offered under an assistant reply."""

    type: ActionType
    text: str
    icon: str
    style: ActionStyle


class Attachment(ApiModel):
    id: str
    name: str
    type: str
    size: int
    path: str
    upload_progress: Optional[float] = Field(None, alias="uploadProgress")


class AudioInfo(ApiModel):
    uri: str
    duration: float = 0
    transcription: Optional[str] = None
    confidence: Optional[float] = None


class MessageMetadata(ApiModel):
    actions: List[ActionButton] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    context: Optional[ContextInfo] = None
    audio: Optional[AudioInfo] = None


class AssistantMessage(ApiModel):
    """UI-facing message shown in the chat transcript."""

    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    type: MessageType = MessageType.TEXT
    metadata: Optional[MessageMetadata] = None


# ---------- v2 sessions ----------


class SessionMetadata(ApiModel):
    source: Optional[str] = None
    patient_id: Optional[str] = Field(None, alias="patientId")
    encounter_id: Optional[str] = Field(None, alias="encounterId")


class Session(ApiModel):
    id: str
    title: str = ""
    created_at: str = Field("", alias="createdAt")
    updated_at: str = Field("", alias="updatedAt")
    last_message_at: Optional[str] = Field(None, alias="lastMessageAt")
    channels: Optional[List[SessionChannel]] = None
    metadata: Optional[SessionMetadata] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return str(value)


class MessageContent(ApiModel):
    text: str = ""


class SessionMessage(ApiModel):
    """One turn of a session as stored by the backend."""

    id: Union[int, str]
    role: Literal["user", "assistant", "tool"]
    content: MessageContent = Field(default_factory=MessageContent)
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    channel: Optional[SessionChannel] = None
    client_message_id: Optional[str] = Field(None, alias="clientMessageId")

    @field_validator("content", mode="before")
    @classmethod
    def wrap_plain_text(cls, value: Any) -> Any:
        # older rows carry the text directly
        if isinstance(value, str):
            return {"text": value}
        return value

    @property
    def text(self) -> str:
        return self.content.text


class SessionPagination(ApiModel):
    page: int = 1
    page_size: int = Field(0, alias="pageSize")
    total: int = 0


class MessagePagination(ApiModel):
    has_more: Optional[bool] = Field(None, alias="hasMore")
    before: Optional[str] = None
    after: Optional[str] = None


class SessionListResponse(ApiModel):
    sessions: List[Session] = Field(default_factory=list)
    pagination: Optional[SessionPagination] = None


class MessagesResponse(ApiModel):
    messages: List[SessionMessage] = Field(default_factory=list)
    pagination: Optional[MessagePagination] = None


class PostMessageResponse(ApiModel):
    user_message: Optional[SessionMessage] = Field(None, alias="userMessage")
    assistant_message: Optional[SessionMessage] = Field(None, alias="assistantMessage")
    suggested_title: Optional[str] = Field(None, alias="suggestedTitle")
    context: Optional[AssistantContext] = None


# ---------- v1 ask / auxiliary endpoints ----------


class AskResult(ApiModel):
    text: str = ""


class AskPractitionerResponse(ApiModel):
    result: AskResult
    context: Optional[AssistantContext] = None


class AssistantResponse(ApiModel):
    text: str
    context: Optional[AssistantContext] = None
    actions: List[ActionButton] = Field(default_factory=list)
    should_update_context: bool = Field(False, alias="shouldUpdateContext")


class TranscriptionResult(ApiModel):
    text: str = ""
    confidence: float = 0
    duration: float = 0


class AnalysisResult(ApiModel):
    id: str = ""
    text: str = ""
    confidence: float = 0
    tags: List[str] = Field(default_factory=list)
    summary: Optional[str] = None


class DocumentAnalysisResponse(ApiModel):
    text: str = ""
    analysis: Optional[AnalysisResult] = None
    suggestions: List[str] = Field(default_factory=list)
