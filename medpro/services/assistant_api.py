"""
Assistant API client for the MedPro practitioner client.

Covers the v1 ask endpoint, v2 conversation sessions, patient lookups used
for context, audio transcription and document analysis.
"""

import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Type, TypeVar, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from medpro.models.assistant import (
    ActionButton,
    ActionStyle,
    ActionType,
    AssistantContext,
    AssistantMessage,
    AssistantResponse,
    AskPractitionerResponse,
    DocumentAnalysisResponse,
    Encounter,
    MessagesResponse,
    Patient,
    PostMessageResponse,
    Session,
    SessionListResponse,
    TranscriptionResult,
)
from medpro.services.api import GENERIC_ERROR_MESSAGE
from medpro.services.attachments import build_multipart, pick_file
from medpro.services.errors import (
    ApiError,
    DocumentAnalysisError,
    TranscriptionError,
)
from medpro.utils.cache import CacheManager, cached_lookup
from medpro.utils.config import settings, get_api_url, AssistantConfig
from medpro.utils.logging import (
    get_logger,
    get_compliance_logger,
    mask_identifier,
    monitor_latency,
    redact_headers,
)

if TYPE_CHECKING:
    from medpro.stores.auth_store import AuthStore

logger = get_logger(__name__)
compliance_logger = get_compliance_logger()

FilePath = Union[str, Path]
M = TypeVar("M", bound=BaseModel)

PATIENT_NAME_KEYS = ("name", "fullName", "patientName", "nome", "firstName")
PATIENT_PHONE_KEYS = ("phone", "telefone", "cellphone")
DEFAULT_PATIENT_NAME = "Paciente"
UNKNOWN_ERROR_MESSAGE = "Erro desconhecido. Tente novamente."

STATUS_MESSAGES = {
    401: "Sessão expirada. Faça login novamente.",
    403: "Acesso negado. Verifique suas permissões.",
    404: "Serviço não encontrado.",
    429: "Muitas perguntas. Aguarde um momento.",
    500: "Erro interno do servidor.",
}


def _first_present(data: Dict[str, Any], keys: Sequence[str]) -> Optional[Any]:
    for key in keys:
        if data.get(key):
            return data[key]
    return None


def _parse(model: Type[M], data: Any) -> M:
    """Validate a response body; a payload of the wrong shape is an ApiError."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Unexpected {model.__name__} payload: {e.error_count()} validation errors")
        raise ApiError(GENERIC_ERROR_MESSAGE, details=str(e)) from e


def _context_dict(context: Optional[Dict[str, Any]]) -> Dict[str, str]:
    context = context or {}
    return {
        key: str(context[key])
        for key in ("patientId", "encounterId")
        if context.get(key)
    }


class AssistantApiService:
    """HTTP client for the assistant endpoints of the MedPro backend."""

    def __init__(
        self,
        auth: Optional["AuthStore"] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[CacheManager] = None,
    ):
        self.auth = auth
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.request_timeout)
        )
        self.cache = cache or CacheManager(ttl=settings.patient_cache_ttl)
        if auth is not None:
            auth.subscribe(self._on_auth_change)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    def _token(self) -> Optional[str]:
        return self.auth.token if self.auth else None

    @property
    def cache_scope(self) -> str:
        return self.auth.practitioner_id if self.auth else ""

    def _on_auth_change(self, state: Any) -> None:
        # cached patient data never outlives the login that fetched it
        if not state.is_authenticated:
            dropped = self.cache.clear()
            if dropped:
                logger.info(f"Dropped {dropped} cached assistant lookups after logout")

    def get_auth_headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"} if json_body else {}
        token = self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send a JSON request; non-2xx responses raise ApiError."""
        url = get_api_url(endpoint, self.base_url)
        request_headers = {**self.get_auth_headers(), **(headers or {})}
        logger.debug(
            f"Assistant request {method} {endpoint}",
            extra={"extra_fields": {"headers": redact_headers(request_headers)}},
        )

        try:
            response = await self.client.request(
                method, url, json=json_body, params=params, headers=request_headers
            )
        except httpx.HTTPError as e:
            logger.error(f"Assistant request failed: {type(e).__name__}")
            raise ApiError(str(e) or type(e).__name__, details=str(e)) from e

        logger.debug(f"Assistant response status: {response.status_code}")

        if not response.is_success:
            logger.error(f"Assistant error response: {response.status_code} for {endpoint}")
            raise ApiError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status=response.status_code,
                details=response.text,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Malformed assistant response from {endpoint}: {type(e).__name__}")
            raise ApiError(
                GENERIC_ERROR_MESSAGE, status=response.status_code, details=response.text
            ) from e

    # ---------- v1 ask ----------
    @monitor_latency("assistant_ask", "/ai/askpract")
    async def ask_practitioner_assistant(
        self, messages: List[AssistantMessage], practitioner_id: str
    ) -> AssistantResponse:
        """Send the whole transcript; the last message is the question."""
        body = {
            "question": messages[-1].content if messages else "",
            "messages": self.format_messages_for_api(messages),
        }
        data = await self.request(
            f"/ai/askpract/{quote(practitioner_id, safe='')}",
            method="POST",
            json_body=body,
        )
        response = _parse(AskPractitionerResponse, data)
        context = response.context
        return AssistantResponse(
            text=response.result.text,
            context=context,
            actions=self.parse_actions(context),
            should_update_context=bool(
                context and (context.patient_id or context.encounter_id)
            ),
        )

    # ---------- v2 sessions ----------
    def _sessions_path(self, practitioner_id: str, *parts: str) -> str:
        path = f"/ai/v2/practitioners/{quote(practitioner_id, safe='')}/sessions"
        for part in parts:
            path += f"/{quote(str(part), safe='')}"
        return path

    async def list_sessions(
        self, practitioner_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> SessionListResponse:
        params = {"page": page, "pageSize": page_size or settings.session_page_size}
        data = await self.request(self._sessions_path(practitioner_id), params=params)
        return _parse(SessionListResponse, data or {})

    async def create_session(
        self,
        practitioner_id: str,
        title: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Session:
        body: Dict[str, Any] = {"title": title or settings.new_session_title}
        if metadata:
            body["metadata"] = metadata
        data = await self.request(
            self._sessions_path(practitioner_id), method="POST", json_body=body
        )
        # some deployments wrap the record as {"session": {...}}
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            data = data["session"]
        return _parse(Session, data)

    async def delete_session(self, practitioner_id: str, session_id: str) -> None:
        await self.request(self._sessions_path(practitioner_id, session_id), method="DELETE")

    async def rename_session(
        self, practitioner_id: str, session_id: str, title: str
    ) -> Optional[Session]:
        data = await self.request(
            self._sessions_path(practitioner_id, session_id),
            method="PATCH",
            json_body={"title": title},
        )
        if isinstance(data, dict) and isinstance(data.get("session"), dict):
            data = data["session"]
        if not isinstance(data, dict) or "id" not in data:
            return None
        return _parse(Session, data)

    async def get_session_messages(
        self,
        practitioner_id: str,
        session_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> MessagesResponse:
        params: Dict[str, Any] = {"limit": limit or settings.message_page_size}
        if before is not None:
            params["before"] = before
        if after is not None:
            params["after"] = after
        data = await self.request(
            self._sessions_path(practitioner_id, session_id, "messages"), params=params
        )
        return _parse(MessagesResponse, data or {})

    @monitor_latency("assistant_post_message", "/ai/v2/sessions/messages")
    async def post_session_message(
        self,
        practitioner_id: str,
        session_id: str,
        text: str,
        client_message_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> PostMessageResponse:
        body: Dict[str, Any] = {"text": text, "channel": AssistantConfig.CHANNEL}
        if client_message_id:
            body["clientMessageId"] = client_message_id
        context = _context_dict(context)
        if context:
            body["context"] = context
        data = await self.request(
            self._sessions_path(practitioner_id, session_id, "messages"),
            method="POST",
            json_body=body,
        )
        return _parse(PostMessageResponse, data or {})

    # ---------- patient context ----------
    @cached_lookup("patient_details")
    async def get_patient_details(self, patient_id: str) -> Patient:
        """Patient summary for the context card, cached per practitioner and patient."""
        response = await self.request(f"/patient/getpatientdetails/{quote(patient_id, safe='')}")
        data = response.get("data") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            data = response if isinstance(response, dict) else {}

        patient = Patient(
            id=str(data.get("id") or data.get("cpf") or patient_id),
            name=_first_present(data, PATIENT_NAME_KEYS) or DEFAULT_PATIENT_NAME,
            cpf=data.get("cpf"),
            email=data.get("email"),
            phone=_first_present(data, PATIENT_PHONE_KEYS),
        )
        compliance_logger.log_data_access(
            resource_type="patient",
            resource_id=mask_identifier(patient_id),
            user_id=self.auth.practitioner_id if self.auth else "",
            operation="read_context",
            success=True,
        )
        return patient

    # ---------- multipart endpoints ----------
    @monitor_latency("transcription", "/ai/transcribe")
    async def transcribe_audio(
        self, audio_path: FilePath, context: Optional[Dict[str, Any]] = None
    ) -> TranscriptionResult:
        """Upload a recording and return its transcription."""
        logger.info("Transcribing audio file")
        try:
            attachment = pick_file(audio_path, kind="audio")
            files = {
                "audio": build_multipart(
                    attachment,
                    filename=f"audio_{int(time.time() * 1000)}.mp4",
                    content_type=AssistantConfig.AUDIO_MIME_TYPE,
                )
            }
            form = {"language": settings.transcription_language, **_context_dict(context)}
            response = await self.client.post(
                get_api_url("/ai/transcribe", self.base_url),
                data=form,
                files=files,
                headers=self.get_auth_headers(json_body=False),
            )
        except Exception as e:
            logger.error(f"Transcription error: {type(e).__name__}")
            raise TranscriptionError(f"Audio transcription failed: {e}") from e

        if not response.is_success:
            raise TranscriptionError(
                f"Audio transcription failed: {response.text}",
                status=response.status_code,
                details=response.text,
            )

        try:
            result = response.json() or {}
        except ValueError as e:
            raise TranscriptionError(f"Audio transcription failed: {e}") from e

        return TranscriptionResult(
            text=result.get("text") or "",
            confidence=result.get("confidence") or 0,
            duration=result.get("duration") or 0,
        )

    @monitor_latency("assistant_analyze_attachment", "/ai/analyze-attachment")
    async def analyze_attachment(
        self, file_path: FilePath, context: Optional[Dict[str, Any]] = None
    ) -> DocumentAnalysisResponse:
        """Upload a document for analysis; context travels in headers."""
        attachment = pick_file(file_path, kind="attachment")
        context = _context_dict(context)
        headers = self.get_auth_headers(json_body=False)
        if context.get("patientId"):
            headers["patient-id"] = context["patientId"]
        if context.get("encounterId"):
            headers["encounter-id"] = context["encounterId"]

        try:
            response = await self.client.post(
                get_api_url("/ai/analyze-attachment", self.base_url),
                files={"attachment": build_multipart(attachment)},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise DocumentAnalysisError(f"Document analysis failed: {e}") from e

        if not response.is_success:
            raise DocumentAnalysisError(
                f"Document analysis failed: {response.text}",
                status=response.status_code,
                details=response.text,
            )
        try:
            return DocumentAnalysisResponse.model_validate(response.json() or {})
        except (ValueError, ValidationError) as e:
            raise DocumentAnalysisError(f"Document analysis failed: {type(e).__name__}") from e

    # ---------- helpers ----------
    @staticmethod
    def parse_actions(context: Optional[AssistantContext]) -> List[ActionButton]:
        """Action buttons offered for a reply's context."""
        actions: List[ActionButton] = []
        if context is None:
            return actions

        if context.prescription and context.prescription.justcreated:
            actions.append(
                ActionButton(
                    type=ActionType.PRESCRIPTION_SIGN,
                    text="Assinar Prescrição",
                    icon="✍️",
                    style=ActionStyle.PRIMARY,
                )
            )
            actions.append(
                ActionButton(
                    type=ActionType.PRESCRIPTION_SEND,
                    text="Enviar para Paciente",
                    icon="📤",
                    style=ActionStyle.SECONDARY,
                )
            )

        if context.patient_id:
            actions.append(
                ActionButton(
                    type=ActionType.NAVIGATE_PATIENT,
                    text="Ver Paciente",
                    icon="👤",
                    style=ActionStyle.OUTLINE,
                )
            )

        if context.encounter_id:
            actions.append(
                ActionButton(
                    type=ActionType.NAVIGATE_ENCOUNTER,
                    text="Ver Encontro",
                    icon="📋",
                    style=ActionStyle.OUTLINE,
                )
            )

        return actions

    @staticmethod
    def format_messages_for_api(messages: List[AssistantMessage]) -> List[Dict[str, str]]:
        return [{"role": message.role, "content": message.content} for message in messages]

    @staticmethod
    def validate_response(response: Any) -> bool:
        if not isinstance(response, dict):
            return False
        result = response.get("result")
        return isinstance(result, dict) and isinstance(result.get("text"), str)

    @staticmethod
    def handle_api_error(error: BaseException) -> str:
        """Localized message for an error raised by a service call."""
        status = getattr(error, "status", None)
        message = getattr(error, "message", None) or str(error)
        if status and status >= 400:
            if status in STATUS_MESSAGES:
                return STATUS_MESSAGES[status]
            return f"Erro {status}: {message}"
        if message:
            return message
        return UNKNOWN_ERROR_MESSAGE

    async def test_connection(self) -> bool:
        try:
            response = await self.client.get(get_api_url("/health", self.base_url))
            return response.is_success
        except httpx.HTTPError as e:
            logger.error(f"Connection test failed: {type(e).__name__}")
            return False

    @staticmethod
    def get_contextual_placeholder(
        patient: Optional[Patient] = None, encounter: Optional[Encounter] = None
    ) -> str:
        if patient and encounter:
            return f"Pergunte sobre {patient.name} ou o encontro {encounter.id}..."
        if patient:
            return f"Pergunte sobre {patient.name}..."
        if encounter:
            return f"Pergunte sobre o encontro {encounter.id}..."
        return "Digite sua pergunta..."

    @staticmethod
    def get_suggested_questions(
        patient: Optional[Patient] = None, encounter: Optional[Encounter] = None
    ) -> List[str]:
        suggestions: List[str] = []
        if patient:
            suggestions.extend(
                [
                    f"Como está o paciente {patient.name}?",
                    f"Qual o histórico médico de {patient.name}?",
                    f"Há alguma alergia registrada para {patient.name}?",
                ]
            )
        if encounter:
            suggestions.extend(
                [
                    f"Resuma o encontro {encounter.id}",
                    "Quais foram os sintomas relatados?",
                    "Precisa de algum exame complementar?",
                ]
            )
        if not patient and not encounter:
            suggestions.extend(
                [
                    "Como posso ajudá-lo hoje?",
                    "Precisa de uma prescrição?",
                    "Quer buscar um paciente?",
                    "Precisa de orientações médicas?",
                ]
            )
        return suggestions
