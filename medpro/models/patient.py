"""Models for the patient history views."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from medpro.models.assistant import ApiModel


class HistoryEncounter(ApiModel):
    """An encounter row as listed by /encounter/getencounters/patient."""

    identifier: str = Field(..., alias="Identifier")
    status: str = Field("", alias="Status")
    encounter_class: str = Field("", alias="Class")
    actual_start: str = Field("", alias="actualStart")
    actual_end: Optional[str] = Field(None, alias="actualEnd")
    length: Optional[float] = Field(None, alias="Length")
    practitioner: str = Field("", alias="Practitioner")
    pract_name: Optional[str] = Field(None, alias="practName")
    subject: str = Field("", alias="Subject")
    short_ai_summary: Optional[str] = Field(None, alias="shortAISummary")
    reason_code: Optional[str] = Field(None, alias="reasonCode")

    @field_validator("identifier", mode="before")
    @classmethod
    def coerce_identifier(cls, value: Any) -> str:
        return str(value)


class EncounterWithDetails(HistoryEncounter):
    clinical_records: List[Dict[str, Any]] = Field(default_factory=list)
    medications: List[Dict[str, Any]] = Field(default_factory=list)
    diagnostics: List[Dict[str, Any]] = Field(default_factory=list)
    images: List[Dict[str, Any]] = Field(default_factory=list)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def clinical_count(self) -> int:
        return len(self.clinical_records)

    @property
    def medication_count(self) -> int:
        return len(self.medications)

    @property
    def diagnostic_count(self) -> int:
        return len(self.diagnostics)

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def attachment_count(self) -> int:
        return len(self.attachments)
