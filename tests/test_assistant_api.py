"""
Tests for the assistant API client.
"""

import httpx
import pytest

from medpro.models.assistant import (
    ActionStyle,
    ActionType,
    AssistantContext,
    AssistantMessage,
    Encounter,
    Patient,
)
from medpro.services.api import GENERIC_ERROR_MESSAGE
from medpro.services.assistant_api import AssistantApiService
from medpro.services.errors import ApiError, DocumentAnalysisError, TranscriptionError

from tests.conftest import PRACTITIONER, TOKEN, request_json

SESSIONS = f"/ai/v2/practitioners/{PRACTITIONER}/sessions"


class TestAskPractitioner:
    """Test the v1 ask endpoint."""

    @pytest.mark.asyncio
    async def test_ask_sends_question_and_history(self, assistant_api, router):
        router.json(
            "POST",
            f"/ai/askpract/{PRACTITIONER}",
            {"result": {"text": "Olá"}, "context": {"patientId": "P1"}},
        )
        messages = [
            AssistantMessage(id="1", role="user", content="Oi"),
            AssistantMessage(id="2", role="assistant", content="Olá!"),
            AssistantMessage(id="3", role="user", content="Como está o paciente?"),
        ]

        response = await assistant_api.ask_practitioner_assistant(messages, PRACTITIONER)

        body = request_json(router.last())
        assert body["question"] == "Como está o paciente?"
        assert body["messages"][0] == {"role": "user", "content": "Oi"}
        assert len(body["messages"]) == 3
        assert response.text == "Olá"
        assert response.should_update_context is True
        assert [a.type for a in response.actions] == [ActionType.NAVIGATE_PATIENT]

    @pytest.mark.asyncio
    async def test_ask_without_context(self, assistant_api, router):
        router.json("POST", f"/ai/askpract/{PRACTITIONER}", {"result": {"text": "ok"}})

        response = await assistant_api.ask_practitioner_assistant([], PRACTITIONER)

        assert request_json(router.last())["question"] == ""
        assert response.should_update_context is False
        assert response.actions == []

    @pytest.mark.asyncio
    async def test_error_response_carries_status(self, assistant_api, router):
        router.add("POST", f"/ai/askpract/{PRACTITIONER}", httpx.Response(429, text="slow down"))

        with pytest.raises(ApiError) as exc_info:
            await assistant_api.ask_practitioner_assistant([], PRACTITIONER)

        assert exc_info.value.status == 429
        assert exc_info.value.details == "slow down"
        assert exc_info.value.message.startswith("HTTP 429")

    @pytest.mark.asyncio
    async def test_missing_result_is_api_error(self, assistant_api, router):
        router.json("POST", f"/ai/askpract/{PRACTITIONER}", {"context": {}})
        messages = [AssistantMessage(id="1", role="user", content="Oi")]

        with pytest.raises(ApiError) as exc_info:
            await assistant_api.ask_practitioner_assistant(messages, PRACTITIONER)

        assert exc_info.value.message == GENERIC_ERROR_MESSAGE
        assert AssistantApiService.handle_api_error(exc_info.value) == GENERIC_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_non_json_body_keeps_status(self, assistant_api, router):
        router.add("POST", f"/ai/askpract/{PRACTITIONER}", httpx.Response(200, text="<html>"))

        with pytest.raises(ApiError) as exc_info:
            await assistant_api.ask_practitioner_assistant([], PRACTITIONER)

        assert exc_info.value.status == 200
        assert AssistantApiService.handle_api_error(exc_info.value) == GENERIC_ERROR_MESSAGE


class TestSessions:
    """Test the v2 session endpoints."""

    @pytest.mark.asyncio
    async def test_list_sessions(self, assistant_api, router):
        router.json(
            "GET",
            SESSIONS,
            {
                "sessions": [
                    {"id": 7, "title": "Retorno", "createdAt": "2024-05-01T10:00:00Z",
                     "updatedAt": "2024-05-01T10:05:00Z", "channels": ["app"]}
                ],
                "pagination": {"page": 1, "pageSize": 50, "total": 1},
            },
        )

        response = await assistant_api.list_sessions(PRACTITIONER)

        request = router.last()
        assert request.url.params["pageSize"] == "50"
        assert request.url.params["page"] == "1"
        assert b"dr.house%40medpro.com" in request.url.raw_path
        assert response.sessions[0].id == "7"
        assert response.pagination.total == 1

    @pytest.mark.asyncio
    async def test_create_session_default_title(self, assistant_api, router):
        router.json("POST", SESSIONS, {"id": "s1", "title": "Nova conversa"})

        session = await assistant_api.create_session(PRACTITIONER)

        assert request_json(router.last()) == {"title": "Nova conversa"}
        assert session.id == "s1"

    @pytest.mark.asyncio
    async def test_create_session_unwraps_envelope(self, assistant_api, router):
        router.json("POST", SESSIONS, {"session": {"id": "s2", "title": "X"}})

        session = await assistant_api.create_session(PRACTITIONER, title="X", metadata={"source": "app"})

        assert request_json(router.last()) == {"title": "X", "metadata": {"source": "app"}}
        assert session.id == "s2"

    @pytest.mark.asyncio
    async def test_delete_and_rename(self, assistant_api, router):
        router.add("DELETE", f"{SESSIONS}/s1", httpx.Response(204))
        router.json("PATCH", f"{SESSIONS}/s1", {"id": "s1", "title": "Dor lombar"})

        await assistant_api.delete_session(PRACTITIONER, "s1")
        renamed = await assistant_api.rename_session(PRACTITIONER, "s1", "Dor lombar")

        assert router.calls("DELETE", f"{SESSIONS}/s1") == 1
        assert request_json(router.last("PATCH")) == {"title": "Dor lombar"}
        assert renamed.title == "Dor lombar"

    @pytest.mark.asyncio
    async def test_get_messages_cursor(self, assistant_api, router):
        router.json(
            "GET",
            f"{SESSIONS}/s1/messages",
            {
                "messages": [
                    {"id": 1, "role": "user", "content": {"text": "Oi"}, "createdAt": "2024-05-01T10:00:00Z"},
                    {"id": 2, "role": "tool", "content": "resultado", "createdAt": "2024-05-01T10:00:01Z"},
                ],
                "pagination": {"hasMore": True},
            },
        )

        response = await assistant_api.get_session_messages(PRACTITIONER, "s1", limit=30, before="10")

        params = router.last().url.params
        assert params["limit"] == "30"
        assert params["before"] == "10"
        assert "after" not in params
        assert response.messages[1].text == "resultado"
        assert response.pagination.has_more is True

    @pytest.mark.asyncio
    async def test_post_message_body(self, assistant_api, router):
        router.json(
            "POST",
            f"{SESSIONS}/s1/messages",
            {
                "userMessage": {"id": 3, "role": "user", "content": {"text": "Oi"}},
                "assistantMessage": {"id": 4, "role": "assistant", "content": {"text": "Olá"}},
                "suggestedTitle": "Saudação",
                "context": {"encounterId": "E1"},
            },
        )

        response = await assistant_api.post_session_message(
            PRACTITIONER, "s1", "Oi", client_message_id="c-1", context={"patientId": "P1"}
        )

        assert request_json(router.last()) == {
            "text": "Oi",
            "channel": "app",
            "clientMessageId": "c-1",
            "context": {"patientId": "P1"},
        }
        assert response.assistant_message.text == "Olá"
        assert response.suggested_title == "Saudação"
        assert response.context.encounter_id == "E1"


class TestPatientDetails:
    """Test patient lookups used for context."""

    @pytest.mark.asyncio
    async def test_unwraps_data_and_falls_back(self, assistant_api, router):
        router.json(
            "GET",
            "/patient/getpatientdetails/111",
            {"success": True, "data": {"cpf": "111", "nome": "Maria", "telefone": "11999999999"}},
        )

        patient = await assistant_api.get_patient_details("111")

        assert patient.id == "111"
        assert patient.name == "Maria"
        assert patient.phone == "11999999999"

    @pytest.mark.asyncio
    async def test_defaults_when_fields_missing(self, assistant_api, router):
        router.json("GET", "/patient/getpatientdetails/222", {})

        patient = await assistant_api.get_patient_details("222")

        assert patient.id == "222"
        assert patient.name == "Paciente"

    @pytest.mark.asyncio
    async def test_results_are_cached(self, assistant_api, router):
        router.json("GET", "/patient/getpatientdetails/333", {"data": {"id": "333", "name": "João"}})

        await assistant_api.get_patient_details("333")
        await assistant_api.get_patient_details("333")

        assert router.calls("GET", "/patient/getpatientdetails/333") == 1


class TestMultipart:
    """Test transcription and attachment analysis uploads."""

    @pytest.mark.asyncio
    async def test_transcribe_audio(self, assistant_api, router, tmp_path):
        audio = tmp_path / "note.m4a"
        audio.write_bytes(b"\x00\x01audio")
        router.json("POST", "/ai/transcribe", {"text": "paciente com febre"})

        result = await assistant_api.transcribe_audio(audio, {"patientId": "P1"})

        request = router.last()
        body = request.content
        assert request.headers["Authorization"] == f"Bearer {TOKEN}"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="audio"' in body
        assert b"audio/mp4" in body
        assert b'filename="audio_' in body
        assert b'name="language"' in body and b"pt-BR" in body
        assert b'name="patientId"' in body
        assert b'name="encounterId"' not in body
        assert result.text == "paciente com febre"
        assert result.confidence == 0
        assert result.duration == 0

    @pytest.mark.asyncio
    async def test_transcribe_failure(self, assistant_api, router, tmp_path):
        audio = tmp_path / "note.m4a"
        audio.write_bytes(b"data")
        router.add("POST", "/ai/transcribe", httpx.Response(500, text="model down"))

        with pytest.raises(TranscriptionError) as exc_info:
            await assistant_api.transcribe_audio(audio)

        assert exc_info.value.message == "Audio transcription failed: model down"
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_transcribe_missing_file(self, assistant_api, router, tmp_path):
        with pytest.raises(TranscriptionError) as exc_info:
            await assistant_api.transcribe_audio(tmp_path / "missing.m4a")

        assert exc_info.value.message.startswith("Audio transcription failed:")
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_analyze_attachment_headers(self, assistant_api, router, tmp_path):
        document = tmp_path / "exame.pdf"
        document.write_bytes(b"%PDF-1.4")
        router.json("POST", "/ai/analyze-attachment", {"text": "Hemograma normal", "suggestions": ["x"]})

        result = await assistant_api.analyze_attachment(
            document, {"patientId": "P1", "encounterId": "E1"}
        )

        request = router.last()
        assert request.headers["patient-id"] == "P1"
        assert request.headers["encounter-id"] == "E1"
        assert b"application/pdf" in request.content
        assert result.text == "Hemograma normal"

    @pytest.mark.asyncio
    async def test_analyze_attachment_failure(self, assistant_api, router, tmp_path):
        document = tmp_path / "exame.pdf"
        document.write_bytes(b"%PDF-1.4")
        router.add("POST", "/ai/analyze-attachment", httpx.Response(400, text="bad file"))

        with pytest.raises(DocumentAnalysisError):
            await assistant_api.analyze_attachment(document)


class TestHelpers:
    """Test the pure helper methods."""

    def test_parse_actions_order(self):
        context = AssistantContext(
            patient_id="P1",
            encounter_id="E1",
            prescription={"justcreated": True, "pdfBase64": "abc", "id": "RX1"},
        )

        actions = AssistantApiService.parse_actions(context)

        assert [a.type for a in actions] == [
            ActionType.PRESCRIPTION_SIGN,
            ActionType.PRESCRIPTION_SEND,
            ActionType.NAVIGATE_PATIENT,
            ActionType.NAVIGATE_ENCOUNTER,
        ]
        assert actions[0].style == ActionStyle.PRIMARY
        assert actions[1].style == ActionStyle.SECONDARY
        assert actions[2].style == ActionStyle.OUTLINE

    def test_parse_actions_empty(self):
        assert AssistantApiService.parse_actions(None) == []
        assert AssistantApiService.parse_actions(AssistantContext()) == []

    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, "Sessão expirada. Faça login novamente."),
            (403, "Acesso negado. Verifique suas permissões."),
            (404, "Serviço não encontrado."),
            (429, "Muitas perguntas. Aguarde um momento."),
            (500, "Erro interno do servidor."),
            (418, "Erro 418: HTTP 418: I'm a teapot"),
        ],
    )
    def test_handle_api_error_status(self, status, expected):
        error = ApiError(f"HTTP {status}: I'm a teapot" if status == 418 else "x", status=status)
        assert AssistantApiService.handle_api_error(error) == expected

    def test_handle_api_error_without_status(self):
        assert AssistantApiService.handle_api_error(ApiError("Falhou")) == "Falhou"
        assert AssistantApiService.handle_api_error(RuntimeError()) == "Erro desconhecido. Tente novamente."

    def test_validate_response(self):
        assert AssistantApiService.validate_response({"result": {"text": "ok"}})
        assert not AssistantApiService.validate_response({"result": {"text": 1}})
        assert not AssistantApiService.validate_response(None)

    def test_contextual_placeholder(self):
        patient = Patient(id="P1", name="Maria")
        encounter = Encounter(id="E1")

        assert (
            AssistantApiService.get_contextual_placeholder(patient, encounter)
            == "Pergunte sobre Maria ou o encontro E1..."
        )
        assert AssistantApiService.get_contextual_placeholder() == "Digite sua pergunta..."

    def test_suggested_questions(self):
        patient = Patient(id="P1", name="Maria")

        assert len(AssistantApiService.get_suggested_questions()) == 4
        suggestions = AssistantApiService.get_suggested_questions(patient, Encounter(id="E1"))
        assert suggestions[0] == "Como está o paciente Maria?"
        assert suggestions[3] == "Resuma o encontro E1"
        assert len(suggestions) == 6

    @pytest.mark.asyncio
    async def test_connection(self, assistant_api, router):
        router.json("GET", "/health", {"ok": True})
        assert await assistant_api.test_connection() is True
