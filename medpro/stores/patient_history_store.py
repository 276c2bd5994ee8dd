"""Patient encounter history with per-encounter details."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import ValidationError

from medpro.models.patient import EncounterWithDetails, HistoryEncounter
from medpro.services.api import ApiService
from medpro.services.errors import ApiError
from medpro.stores.base import Store
from medpro.utils.config import settings, AssistantConfig
from medpro.utils.dates import parse_datetime
from medpro.utils.logging import get_logger

logger = get_logger(__name__)

HISTORY_LOAD_ERROR_TEXT = "Não foi possível carregar o histórico do paciente"
DETAIL_PAGE_SIZE = 10


def _as_list(value: Any, wrapped: bool) -> List[Dict[str, Any]]:
    """Detail payloads are either ``{"data": [...]}`` or a bare list."""
    if wrapped and isinstance(value, dict):
        value = value.get("data")
    return value if isinstance(value, list) else []


def _start_key(encounter: HistoryEncounter) -> float:
    parsed = parse_datetime(encounter.actual_start)
    return parsed.timestamp() if parsed else float("-inf")


@dataclass
class PatientHistoryState:
    patient_cpf: Optional[str] = None
    encounters: List[EncounterWithDetails] = field(default_factory=list)
    expanded: FrozenSet[str] = frozenset()
    is_loading: bool = False
    error: Optional[str] = None
    retry_count: int = 0


class PatientHistoryStore(Store[PatientHistoryState]):
    """Loads a patient's encounters and the records attached to each."""

    def __init__(self, api: ApiService):
        super().__init__(PatientHistoryState())
        self.api = api
        self._limit = 50

    async def _detail(self, coro, wrapped: bool) -> List[Dict[str, Any]]:
        # a failing detail call leaves that section empty
        try:
            return _as_list(await coro, wrapped)
        except ApiError as e:
            logger.warning(f"Encounter detail request failed: {e.status}")
            return []

    async def _load_details(self, patient_cpf: str, encounter: HistoryEncounter) -> EncounterWithDetails:
        encounter_id = encounter.identifier
        clinical, medications, diagnostics, images, attachments = await asyncio.gather(
            self._detail(
                self.api.get_encounter_clinical_records(encounter_id, limit=DETAIL_PAGE_SIZE),
                wrapped=True,
            ),
            self._detail(
                self.api.get_encounter_medications(patient_cpf, encounter_id, limit=DETAIL_PAGE_SIZE),
                wrapped=True,
            ),
            self._detail(self.api.get_encounter_diagnostics(encounter_id), wrapped=False),
            self._detail(self.api.get_encounter_images(encounter_id), wrapped=False),
            self._detail(self.api.get_encounter_attachments(encounter_id), wrapped=False),
        )
        return EncounterWithDetails(
            **encounter.model_dump(),
            clinical_records=clinical,
            medications=medications,
            diagnostics=diagnostics,
            images=images,
            attachments=attachments,
        )

    async def load_history(self, patient_cpf: str, limit: int = 50) -> List[EncounterWithDetails]:
        """Fetch encounters newest first, each with its detail sections."""
        self._limit = limit
        self.set_state(patient_cpf=patient_cpf, is_loading=True, error=None)

        try:
            response = await self.api.get_patient_encounters(patient_cpf, limit=limit)
            rows = response.get("data") if isinstance(response, dict) else None
            if not isinstance(rows, list):
                logger.warning("No encounters found or invalid response format")
                self.set_state(encounters=[], is_loading=False, retry_count=0)
                return []

            encounters = [HistoryEncounter.model_validate(row) for row in rows]
            detailed = await asyncio.gather(
                *(self._load_details(patient_cpf, encounter) for encounter in encounters)
            )
        except (ApiError, ValidationError) as e:
            logger.error(f"Error loading patient history: {type(e).__name__}")
            message = e.message if isinstance(e, ApiError) else HISTORY_LOAD_ERROR_TEXT
            self.set_state(
                is_loading=False,
                error=message or HISTORY_LOAD_ERROR_TEXT,
                retry_count=self.state.retry_count + 1,
            )
            return []

        detailed = sorted(detailed, key=_start_key, reverse=True)
        logger.info(f"Loaded {len(detailed)} encounters with details")
        self.set_state(encounters=detailed, is_loading=False, retry_count=0)
        return detailed

    async def retry(self) -> List[EncounterWithDetails]:
        if self.state.retry_count >= settings.max_retries:
            self.set_state(error=AssistantConfig.TOO_MANY_RETRIES_TEXT)
            return self.state.encounters
        if not self.state.patient_cpf:
            return self.state.encounters
        return await self.load_history(self.state.patient_cpf, self._limit)

    def toggle_expanded(self, encounter_id: str) -> None:
        expanded = set(self.state.expanded)
        if encounter_id in expanded:
            expanded.remove(encounter_id)
        else:
            expanded.add(encounter_id)
        self.set_state(expanded=frozenset(expanded))
