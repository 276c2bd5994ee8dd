"""
Assistant conversation state.

Drives the v2 session API: session list, per-session message cache with
cursor pagination, optimistic sends, patient/encounter context and audio
transcription. Errors are converted to pt-BR text and kept in state.
"""

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from medpro.models.assistant import (
    ActionButton,
    ActionType,
    AssistantContext,
    AssistantMessage,
    ContextInfo,
    ContextSource,
    Encounter,
    EncounterStatus,
    MessageType,
    Patient,
    Session,
    SessionChannel,
    SessionMessage,
    utc_now,
    utc_now_iso,
)
from medpro.services.assistant_api import AssistantApiService
from medpro.services.errors import ApiError, AttachmentError
from medpro.stores.base import Store
from medpro.utils.config import settings, AssistantConfig
from medpro.utils.dates import parse_datetime
from medpro.utils.logging import get_logger, RequestContext

logger = get_logger(__name__)

SEND_FAILURE_PREFIX = "Desculpe, não foi possível obter uma resposta: "
SIGN_PENDING_TEXT = "Funcionalidade de assinatura digital será implementada em breve."
SEND_PENDING_TEXT = "Funcionalidade de envio de prescrição será implementada em breve."
ANALYSIS_ERROR_TEXT = "Erro ao analisar documento"
TRANSCRIPTION_ERROR_TEXT = "Erro ao transcrever áudio"

ServiceError = (ApiError, AttachmentError)


def generate_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def session_message_to_assistant_message(message: SessionMessage) -> AssistantMessage:
    """UI projection of a stored message; tool output is shown as the assistant."""
    return AssistantMessage(
        id=str(message.id),
        role="assistant" if message.role == "tool" else message.role,
        content=message.text,
        timestamp=parse_datetime(message.created_at) or utc_now(),
        type=MessageType.TEXT,
    )


@dataclass
class AssistantState:
    # v2 sessions
    sessions: List[Session] = field(default_factory=list)
    active_session_id: Optional[str] = None
    session_messages: Dict[str, List[SessionMessage]] = field(default_factory=dict)
    sessions_loading: bool = False
    session_loading: bool = False
    message_loading: bool = False
    has_more: Dict[str, bool] = field(default_factory=dict)

    # transcript shown to the user
    messages: List[AssistantMessage] = field(default_factory=list)
    is_loading: bool = False
    is_typing: bool = False

    # context
    current_patient: Optional[Patient] = None
    current_encounter: Optional[Encounter] = None
    context_history: List[ContextInfo] = field(default_factory=list)
    show_context_card: bool = False

    # audio
    is_transcribing: bool = False
    last_audio_path: Optional[str] = None

    # errors
    last_error: Optional[str] = None
    retry_count: int = 0


class AssistantStore(Store[AssistantState]):
    """Session and message state machine over AssistantApiService."""

    def __init__(
        self,
        api: AssistantApiService,
        auth: Any,
        on_navigate: Optional[Callable[[str, str], None]] = None,
    ):
        super().__init__(AssistantState())
        self.api = api
        self.auth = auth
        self.on_navigate = on_navigate

    @property
    def practitioner_id(self) -> str:
        return self.auth.practitioner_id if self.auth else ""

    # ---------- selectors ----------
    @property
    def active_session(self) -> Optional[Session]:
        for session in self.state.sessions:
            if session.id == self.state.active_session_id:
                return session
        return None

    @property
    def context(self) -> Dict[str, Any]:
        return {
            "patient": self.state.current_patient,
            "encounter": self.state.current_encounter,
            "show_card": self.state.show_context_card,
        }

    def _context_payload(self) -> Dict[str, str]:
        payload = {}
        if self.state.current_patient:
            payload["patientId"] = self.state.current_patient.id
        if self.state.current_encounter:
            payload["encounterId"] = self.state.current_encounter.id
        return payload

    def _cached(self, session_id: str) -> List[SessionMessage]:
        return self.state.session_messages.get(session_id, [])

    def _with_cache(self, session_id: str, messages: List[SessionMessage]) -> Dict[str, List[SessionMessage]]:
        return {**self.state.session_messages, session_id: messages}

    # ---------- v2 sessions ----------
    async def initialize_assistant(self) -> None:
        """Load the session list and select the remembered (or newest) session."""
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            logger.warning("Cannot initialize assistant - no practitioner ID")
            return

        self.set_state(sessions_loading=True, last_error=None)
        try:
            response = await self.api.list_sessions(
                practitioner_id, page_size=settings.session_page_size
            )
        except ServiceError as e:
            logger.error(f"Error initializing assistant: {e}")
            self.set_state(sessions_loading=False, last_error=self.api.handle_api_error(e))
            return

        sessions = response.sessions
        self.set_state(sessions=sessions, sessions_loading=False)

        remembered = self.state.active_session_id
        if remembered and any(s.id == remembered for s in sessions):
            await self.select_session(remembered)
        elif sessions:
            await self.select_session(sessions[0].id)
        else:
            self.set_state(active_session_id=None)

        logger.debug(f"Initialized with {len(sessions)} sessions")

    async def load_sessions(self) -> None:
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            return

        self.set_state(sessions_loading=True, last_error=None)
        try:
            response = await self.api.list_sessions(
                practitioner_id, page_size=settings.session_page_size
            )
        except ServiceError as e:
            logger.error(f"Error loading sessions: {e}")
            self.set_state(sessions_loading=False, last_error=self.api.handle_api_error(e))
            return

        self.set_state(sessions=response.sessions, sessions_loading=False)
        logger.debug(f"Loaded {len(response.sessions)} sessions")

    async def select_session(self, session_id: str) -> None:
        """Activate a session, fetching its messages unless already cached."""
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            return

        self.set_state(session_loading=True, active_session_id=session_id, last_error=None)
        messages = self.state.session_messages.get(session_id)

        if messages is None:
            try:
                with RequestContext(practitioner_id=practitioner_id, session_id=session_id):
                    response = await self.api.get_session_messages(
                        practitioner_id, session_id, limit=settings.message_page_size
                    )
            except ServiceError as e:
                logger.error(f"Error selecting session: {e}")
                self.set_state(session_loading=False, last_error=self.api.handle_api_error(e))
                return

            messages = response.messages
            has_more = dict(self.state.has_more)
            if response.pagination is not None and response.pagination.has_more is not None:
                has_more[session_id] = response.pagination.has_more
            self.set_state(session_messages=self._with_cache(session_id, messages), has_more=has_more)

        self.set_state(
            messages=[session_message_to_assistant_message(m) for m in messages],
            session_loading=False,
        )
        logger.debug(f"Selected session {session_id} with {len(messages)} messages")

    async def create_new_session(self) -> Optional[Session]:
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            self.set_error(AssistantConfig.UNAUTHENTICATED_TEXT)
            return None

        self.set_state(session_loading=True, last_error=None)
        try:
            session = await self.api.create_session(
                practitioner_id, title=settings.new_session_title
            )
        except ServiceError as e:
            logger.error(f"Error creating session: {e}")
            self.set_state(session_loading=False, last_error=self.api.handle_api_error(e))
            return None

        self.set_state(
            sessions=[session, *self.state.sessions],
            active_session_id=session.id,
            session_messages=self._with_cache(session.id, []),
            has_more={**self.state.has_more, session.id: False},
            messages=[],
            session_loading=False,
        )
        logger.debug(f"Created new session: {session.id}")
        return session

    async def delete_session(self, session_id: str) -> None:
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            return

        self.set_state(session_loading=True, last_error=None)
        try:
            await self.api.delete_session(practitioner_id, session_id)
        except ServiceError as e:
            logger.error(f"Error deleting session: {e}")
            self.set_state(session_loading=False, last_error=self.api.handle_api_error(e))
            return

        sessions = [s for s in self.state.sessions if s.id != session_id]
        session_messages = {
            sid: msgs for sid, msgs in self.state.session_messages.items() if sid != session_id
        }
        has_more = {sid: flag for sid, flag in self.state.has_more.items() if sid != session_id}
        active_id = self.state.active_session_id
        messages = self.state.messages
        was_active = active_id == session_id

        if was_active:
            active_id = sessions[0].id if sessions else None
            messages = [
                session_message_to_assistant_message(m)
                for m in session_messages.get(active_id, [])
            ] if active_id else []

        self.set_state(
            sessions=sessions,
            session_messages=session_messages,
            has_more=has_more,
            active_session_id=active_id,
            messages=messages,
            session_loading=False,
        )

        if was_active and active_id:
            await self.select_session(active_id)

        logger.debug(f"Deleted session: {session_id}")

    async def rename_session(self, session_id: str, title: str) -> None:
        practitioner_id = self.practitioner_id
        if not practitioner_id:
            return

        try:
            updated = await self.api.rename_session(practitioner_id, session_id, title)
        except ServiceError as e:
            logger.error(f"Error renaming session: {e}")
            self.set_state(last_error=self.api.handle_api_error(e))
            return

        new_title = (updated.title if updated else "") or title
        self.set_state(
            sessions=[
                s.model_copy(update={"title": new_title}) if s.id == session_id else s
                for s in self.state.sessions
            ]
        )
        logger.debug(f"Renamed session: {session_id}")

    async def send_message(self, content: str) -> None:
        """Post a message with an optimistic echo; failures become error bubbles."""
        text = content.strip()
        if not text:
            return

        practitioner_id = self.practitioner_id
        if not practitioner_id:
            self.set_error(AssistantConfig.UNAUTHENTICATED_TEXT)
            return

        session_id = self.state.active_session_id
        if not session_id:
            new_session = await self.create_new_session()
            if new_session is None:
                return
            session_id = new_session.id

        user_message = self.add_message(
            AssistantMessage(id="", role="user", content=text, type=MessageType.TEXT)
        )
        self.set_state(is_loading=True, is_typing=True)

        try:
            with RequestContext(practitioner_id=practitioner_id, session_id=session_id):
                response = await self.api.post_session_message(
                    practitioner_id,
                    session_id,
                    text,
                    client_message_id=user_message.id,
                    context=self._context_payload(),
                )

            sent = response.user_message or SessionMessage(
                id=user_message.id,
                role="user",
                content={"text": text},
                created_at=utc_now_iso(),
                channel=SessionChannel.APP,
                client_message_id=user_message.id,
            )
            reply = response.assistant_message or SessionMessage(
                id=generate_id(),
                role="assistant",
                content={"text": AssistantConfig.NO_REPLY_TEXT},
                created_at=utc_now_iso(),
                channel=SessionChannel.APP,
            )
            self.set_state(
                session_messages=self._with_cache(
                    session_id, [*self._cached(session_id), sent, reply]
                )
            )
            self.add_message(session_message_to_assistant_message(reply))

            session = next((s for s in self.state.sessions if s.id == session_id), None)
            if session is not None and session.title == settings.new_session_title:
                new_title = response.suggested_title or text[: settings.session_title_max_length]
                await self.rename_session(session_id, new_title)

            if response.context is not None:
                await self.update_context_from_response(response.context)

            self.set_state(retry_count=0)
        except ServiceError as e:
            logger.error(f"Error sending message: {e}")
            error_message = self.api.handle_api_error(e)
            self.add_message(
                AssistantMessage(
                    id="",
                    role="assistant",
                    content=f"{SEND_FAILURE_PREFIX}{error_message}",
                    type=MessageType.ERROR,
                )
            )
            self.set_state(last_error=error_message, retry_count=self.state.retry_count + 1)
        finally:
            self.set_state(is_loading=False, is_typing=False)

    async def load_more_messages(self) -> None:
        """Prepend the page of messages older than the oldest cached one."""
        practitioner_id = self.practitioner_id
        session_id = self.state.active_session_id
        if not practitioner_id or not session_id:
            return

        current = self._cached(session_id)
        if not current:
            return
        if self.state.has_more.get(session_id) is False:
            return

        before = str(current[0].id)
        self.set_state(message_loading=True)
        try:
            response = await self.api.get_session_messages(
                practitioner_id,
                session_id,
                limit=settings.message_more_page_size,
                before=before,
            )
        except ServiceError as e:
            logger.error(f"Error loading more messages: {e}")
            self.set_state(message_loading=False, last_error=self.api.handle_api_error(e))
            return

        older = response.messages
        has_more = dict(self.state.has_more)
        if response.pagination is not None and response.pagination.has_more is not None:
            has_more[session_id] = response.pagination.has_more
        elif not older:
            has_more[session_id] = False

        changes: Dict[str, Any] = {"message_loading": False, "has_more": has_more}
        if older:
            changes["session_messages"] = self._with_cache(
                session_id, [*older, *self._cached(session_id)]
            )
            changes["messages"] = [
                *(session_message_to_assistant_message(m) for m in older),
                *self.state.messages,
            ]
        self.set_state(**changes)

    # ---------- transcript ----------
    def add_message(self, message: AssistantMessage) -> AssistantMessage:
        """Append a message under a fresh id; clears the last error."""
        stored = message.model_copy(update={"id": generate_id()})
        self.set_state(messages=[*self.state.messages, stored], last_error=None)
        return stored

    def update_last_message(self, **update: Any) -> None:
        if not self.state.messages:
            return
        *head, last = self.state.messages
        self.set_state(messages=[*head, last.model_copy(update=update)])

    def remove_message(self, message_id: str) -> None:
        self.set_state(messages=[m for m in self.state.messages if m.id != message_id])

    def clear_messages(self) -> None:
        self.set_state(messages=[])

    def reset_conversation(self) -> None:
        self.set_state(
            messages=[],
            current_patient=None,
            current_encounter=None,
            show_context_card=False,
            last_error=None,
            retry_count=0,
        )

    # ---------- context ----------
    def set_patient_context(self, patient: Patient) -> None:
        info = ContextInfo(patient=patient, source=ContextSource.NAVIGATION)
        self.set_state(
            current_patient=patient,
            context_history=[*self.state.context_history, info],
            show_context_card=True,
        )

    def set_encounter_context(self, encounter: Encounter) -> None:
        info = ContextInfo(encounter=encounter, source=ContextSource.NAVIGATION)
        self.set_state(
            current_encounter=encounter,
            context_history=[*self.state.context_history, info],
            show_context_card=True,
        )

    def clear_context(self) -> None:
        self.set_state(current_patient=None, current_encounter=None, show_context_card=False)

    async def update_context_from_response(self, context: AssistantContext) -> None:
        """Follow the patient/encounter the assistant switched to."""
        updated = False
        patient = self.state.current_patient
        encounter = self.state.current_encounter

        if context.patient_id and (patient is None or patient.id != context.patient_id):
            try:
                details = await self.api.get_patient_details(context.patient_id)
            except ServiceError as e:
                logger.error(f"Error fetching patient details: {e}")
            else:
                self.set_patient_context(details)
                updated = True

        if context.encounter_id and (encounter is None or encounter.id != context.encounter_id):
            self.set_encounter_context(
                Encounter(
                    id=context.encounter_id,
                    patient_id=context.patient_id or "",
                    status=EncounterStatus.OPEN,
                )
            )
            updated = True

        if updated:
            self.set_state(show_context_card=True)

    # ---------- UI toggles ----------
    def set_loading(self, loading: bool) -> None:
        self.set_state(is_loading=loading)

    def set_typing(self, typing: bool) -> None:
        self.set_state(is_typing=typing)

    def toggle_context_card(self) -> None:
        self.set_state(show_context_card=not self.state.show_context_card)

    def set_transcribing(self, transcribing: bool) -> None:
        self.set_state(is_transcribing=transcribing)

    # ---------- special actions ----------
    async def handle_prescription_sign(self, pdf_base64: Optional[str] = None) -> None:
        logger.debug("Prescription signing not yet available")
        self.add_message(AssistantMessage(id="", role="assistant", content=SIGN_PENDING_TEXT))

    async def handle_prescription_send(self, prescription_id: Optional[str] = None) -> None:
        logger.debug("Prescription sending not yet available")
        self.add_message(AssistantMessage(id="", role="assistant", content=SEND_PENDING_TEXT))

    async def handle_document_analysis(self, file_path: Union[str, Path]) -> None:
        self.set_state(is_loading=True)
        try:
            response = await self.api.analyze_attachment(file_path, self._context_payload())
            self.add_message(
                AssistantMessage(id="", role="assistant", content=response.text)
            )
        except ServiceError as e:
            logger.error(f"Error analyzing document: {e}")
            self.set_error(ANALYSIS_ERROR_TEXT)
        finally:
            self.set_state(is_loading=False)

    def navigate_to_patient(self, patient_id: str) -> None:
        logger.debug("Navigate to patient requested")
        if self.on_navigate:
            self.on_navigate("patient", patient_id)

    def navigate_to_encounter(self, encounter_id: str) -> None:
        logger.debug("Navigate to encounter requested")
        if self.on_navigate:
            self.on_navigate("encounter", encounter_id)

    async def dispatch_action(
        self,
        action: ActionButton,
        context: Optional[AssistantContext] = None,
        file_path: Optional[Union[str, Path]] = None,
    ) -> None:
        """Run the handler for an action button by its type."""
        context = context or AssistantContext()
        prescription = context.prescription

        if action.type == ActionType.PRESCRIPTION_SIGN:
            await self.handle_prescription_sign(prescription.pdf_base64 if prescription else None)
        elif action.type == ActionType.PRESCRIPTION_SEND:
            await self.handle_prescription_send(prescription.id if prescription else None)
        elif action.type == ActionType.NAVIGATE_PATIENT and context.patient_id:
            self.navigate_to_patient(context.patient_id)
        elif action.type == ActionType.NAVIGATE_ENCOUNTER and context.encounter_id:
            self.navigate_to_encounter(context.encounter_id)
        elif action.type == ActionType.ANALYZE_DOCUMENT and file_path is not None:
            await self.handle_document_analysis(file_path)
        else:
            logger.warning(f"Action {action.type.value} ignored: missing target")

    # ---------- audio ----------
    async def transcribe_audio(self, audio_path: Union[str, Path]) -> str:
        """Transcribe a recording with the current context; errors propagate."""
        self.set_state(is_transcribing=True, last_audio_path=str(audio_path))
        try:
            result = await self.api.transcribe_audio(audio_path, self._context_payload())
        except ServiceError as e:
            logger.error(f"Error transcribing audio: {e}")
            self.set_state(is_transcribing=False)
            self.set_error(TRANSCRIPTION_ERROR_TEXT)
            raise

        self.set_state(is_transcribing=False)
        return result.text

    async def send_audio_message(
        self, audio_path: Union[str, Path], transcription: Optional[str] = None
    ) -> None:
        try:
            text = transcription or await self.transcribe_audio(audio_path)
        except ServiceError as e:
            logger.error(f"Error sending audio message: {e}")
            self.set_error(self.api.handle_api_error(e))
            return
        await self.send_message(text)

    # ---------- errors ----------
    def set_error(self, error: str) -> None:
        self.set_state(last_error=error)

    def clear_error(self) -> None:
        self.set_state(last_error=None)

    async def retry(self) -> None:
        """Resend the last user message unless the retry budget is spent."""
        if self.state.retry_count >= settings.max_retries:
            self.set_error(AssistantConfig.TOO_MANY_RETRIES_TEXT)
            return

        last_user = next(
            (m for m in reversed(self.state.messages) if m.role == "user"), None
        )
        if last_user is not None:
            await self.send_message(last_user.content)

    # ---------- persistence ----------
    def persisted_state(self) -> Dict[str, Any]:
        """Snapshot of what survives a restart."""
        history = self.state.context_history[-settings.context_history_limit:]
        return {
            "active_session_id": self.state.active_session_id,
            "context_history": [info.model_dump(mode="json", by_alias=True) for info in history],
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        history = [
            ContextInfo.model_validate(item) for item in snapshot.get("context_history") or []
        ]
        self.set_state(
            active_session_id=snapshot.get("active_session_id"),
            context_history=history[-settings.context_history_limit:],
        )
