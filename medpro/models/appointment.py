"""Pydantic models for the appointment scheduling wizard."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from medpro.models.assistant import ApiModel


class SelectedService(ApiModel):
    id: str
    name: str
    price: float = 0
    duration: Optional[int] = None


class ServiceCoverageStatus(ApiModel):
    service_id: str = Field(..., alias="serviceId")
    covered: bool = False
    coverage_type: Optional[str] = Field(None, alias="coverageType")
    copay: Optional[float] = None


class RecentPatient(ApiModel):
    cpf: str
    name: str
    phone: str = ""


class AppointmentData(ApiModel):
    """Draft built up across the wizard steps and posted on submit."""

    # Patient info
    subject: str = ""
    patient_name: str = Field("", alias="patientName")
    patient_phone: str = Field("", alias="patientPhone")
    subject_type: Literal["patient", "lead"] = Field("patient", alias="subjectType")
    lead_id: Optional[str] = Field(None, alias="leadId")

    # Location info
    locationid: str = ""
    location_name: str = Field("", alias="locationName")

    status: Literal["booked"] = "booked"
    practitionerid: str = ""

    # Date and time
    startdate: str = ""
    starttime: str = ""
    enddate: str = ""
    endtime: str = ""
    duration: int = 30

    # Services
    servicecategory: str = ""
    servicetype: str = ""
    appointmenttype: str = ""
    selected_services: List[SelectedService] = Field(default_factory=list)

    # Payment
    payment_type: Optional[str] = Field(None, alias="paymentType")
    services_coverage_status: List[ServiceCoverageStatus] = Field(
        default_factory=list, alias="servicesCoverageStatus"
    )

    # Notes
    description: str = ""
    note: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        # leadId is sent as null for patients
        payload = self.model_dump(by_alias=True, mode="json")
        if payload.get("note") is None:
            payload.pop("note", None)
        return payload
