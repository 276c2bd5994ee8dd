"""
Tests for the patient history store.
"""

import httpx
import pytest

from medpro.stores.patient_history_store import PatientHistoryStore

CPF = "52998224725"


def encounter_row(identifier, start):
    return {
        "Identifier": identifier,
        "Status": "finished",
        "Class": "AMB",
        "actualStart": start,
        "Practitioner": "dr.house@medpro.com",
        "practName": "Dr. House",
        "Subject": CPF,
    }


medications = {}


def medication_handler(request):
    # one path serves every encounter; the encounter id is a query parameter
    return httpx.Response(200, json={"data": medications.get(request.url.params["encounter"], [])})


@pytest.fixture
def store(api):
    return PatientHistoryStore(api)


def route_details(router, encounter_id, clinical=None, meds=None, diagnostics=None):
    router.json("GET", f"/clinical/records/encounter/{encounter_id}", {"data": clinical or []})
    medications[encounter_id] = meds or []
    router.routes[("GET", f"/medication/records/{CPF}")] = [medication_handler]
    router.json("GET", f"/diagnostic/encounter/{encounter_id}", diagnostics or [])
    router.json("GET", f"/images/encounter/{encounter_id}", [])
    router.json("GET", f"/attach/getbyencounter/{encounter_id}", [])


class TestLoadHistory:
    """Test loading encounters with their detail sections."""

    @pytest.mark.asyncio
    async def test_loads_and_sorts_newest_first(self, store, router):
        router.json(
            "GET",
            f"/encounter/getencounters/patient/{CPF}",
            {
                "data": [
                    encounter_row(1, "2024-01-10T09:00:00Z"),
                    encounter_row(2, "2024-03-05T14:30:00Z"),
                ]
            },
        )
        route_details(router, "1", clinical=[{"id": "c1"}], diagnostics=[{"id": "d1"}, {"id": "d2"}])
        route_details(router, "2", meds=[{"id": "m1"}])

        encounters = await store.load_history(CPF)

        assert [e.identifier for e in encounters] == ["2", "1"]
        older = encounters[1]
        assert older.clinical_count == 1
        assert older.diagnostic_count == 2
        assert older.image_count == 0
        assert encounters[0].medication_count == 1
        assert store.state.error is None
        assert store.state.is_loading is False
        assert router.last("GET", f"/encounter/getencounters/patient/{CPF}").url.params["limit"] == "50"

    @pytest.mark.asyncio
    async def test_failing_detail_becomes_empty(self, store, router):
        router.json(
            "GET",
            f"/encounter/getencounters/patient/{CPF}",
            {"data": [encounter_row("E1", "2024-01-10T09:00:00Z")]},
        )
        route_details(router, "E1", clinical=[{"id": "c1"}])
        router.routes[("GET", "/images/encounter/E1")] = [httpx.Response(500, text="fail")]

        encounters = await store.load_history(CPF)

        assert encounters[0].image_count == 0
        assert encounters[0].clinical_count == 1
        assert store.state.error is None

    @pytest.mark.asyncio
    async def test_invalid_response_yields_empty(self, store, router):
        router.json("GET", f"/encounter/getencounters/patient/{CPF}", {"message": "nada"})

        assert await store.load_history(CPF) == []
        assert store.state.encounters == []
        assert store.state.error is None

    @pytest.mark.asyncio
    async def test_failure_sets_error_and_counts(self, store, router):
        router.add("GET", f"/encounter/getencounters/patient/{CPF}", httpx.Response(500, text="x"))

        assert await store.load_history(CPF) == []

        assert store.state.error == "Erro no servidor. Tente novamente em alguns instantes."
        assert store.state.retry_count == 1

    @pytest.mark.asyncio
    async def test_html_page_is_recorded_as_error(self, store, router):
        router.add(
            "GET",
            f"/encounter/getencounters/patient/{CPF}",
            httpx.Response(200, text="<html>ngrok</html>"),
        )

        assert await store.load_history(CPF) == []

        assert store.state.is_loading is False
        assert store.state.error == "Erro ao processar sua solicitação. Tente novamente."
        assert store.state.retry_count == 1

    @pytest.mark.asyncio
    async def test_retry_is_capped(self, store, router):
        router.add("GET", f"/encounter/getencounters/patient/{CPF}", httpx.Response(500, text="x"))

        await store.load_history(CPF)
        await store.retry()
        await store.retry()
        await store.retry()

        assert router.calls("GET", f"/encounter/getencounters/patient/{CPF}") == 3
        assert store.state.error == "Muitas tentativas. Tente novamente mais tarde."

    def test_toggle_expanded(self, store):
        store.toggle_expanded("E1")
        assert "E1" in store.state.expanded

        store.toggle_expanded("E1")
        assert "E1" not in store.state.expanded
