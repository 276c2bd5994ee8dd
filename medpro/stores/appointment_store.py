"""Multi-step appointment wizard draft."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

from medpro.models.appointment import (
    AppointmentData,
    RecentPatient,
    SelectedService,
    ServiceCoverageStatus,
)
from medpro.services.errors import ApiError
from medpro.stores.base import Store
from medpro.utils.config import settings
from medpro.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DURATION = 30
FIRST_STEP = 1
LAST_STEP = 6
INCOMPLETE_APPOINTMENT_MESSAGE = "Preencha todos os dados do agendamento antes de confirmar."


def round_up_to_next_30_min(minutes: int) -> int:
    """Round a duration up to the next half hour; non-positive becomes 30."""
    if minutes <= 0:
        return DEFAULT_DURATION
    remainder = minutes % 30
    if remainder == 0:
        return minutes
    return minutes + (30 - remainder)


def _appointment_duration(services: Sequence[SelectedService]) -> int:
    total = sum(service.duration or 0 for service in services)
    return round_up_to_next_30_min(total) if total > 0 else DEFAULT_DURATION


@dataclass
class AppointmentState:
    appointment_data: AppointmentData = field(default_factory=AppointmentData)
    current_step: int = FIRST_STEP
    recent_patients: List[RecentPatient] = field(default_factory=list)
    selected_services: List[SelectedService] = field(default_factory=list)
    is_submitting: bool = False
    error: Optional[str] = None


class AppointmentStore(Store[AppointmentState]):
    """Collects the wizard steps and submits the finished appointment."""

    def __init__(self, api: Any = None):
        super().__init__(AppointmentState())
        self.api = api

    @property
    def data(self) -> AppointmentData:
        return self.state.appointment_data

    def _update(self, **changes: Any) -> None:
        self.set_state(appointment_data=self.data.model_copy(update=changes))

    # ---------- step setters ----------
    def set_patient(
        self,
        identifier: str,
        name: str,
        phone: str,
        subject_type: Literal["patient", "lead"] = "patient",
        lead_id: Optional[Union[str, int]] = None,
    ) -> None:
        self._update(
            subject=identifier if subject_type == "patient" else "",
            patient_name=name,
            patient_phone=phone,
            subject_type=subject_type,
            lead_id=str(lead_id) if lead_id is not None else None,
        )

    def set_services(
        self,
        category: str,
        service_type: str,
        appointment_type: str,
        services: List[SelectedService],
        duration: int,
    ) -> None:
        self._update(
            servicecategory=category,
            servicetype=service_type,
            appointmenttype=appointment_type,
            selected_services=list(services),
            duration=duration,
        )

    def set_payment(self, payment_type: str, coverage: Iterable[ServiceCoverageStatus]) -> None:
        self._update(payment_type=payment_type, services_coverage_status=list(coverage))

    def set_location(self, location_id: str, location_name: str) -> None:
        self._update(locationid=location_id, location_name=location_name)

    def set_date_time(self, date: str, time: str, end_time: str) -> None:
        self._update(startdate=date, starttime=time, enddate=date, endtime=end_time)

    def set_notes(self, description: str, note: Optional[str] = None) -> None:
        changes: Dict[str, Any] = {"description": description}
        if note is not None:
            changes["note"] = note
        self._update(**changes)

    def set_practitioner(self, practitioner_id: str) -> None:
        self._update(practitionerid=practitioner_id)

    def set_current_step(self, step: int) -> None:
        self.set_state(current_step=step)

    # ---------- services ----------
    def _set_selected(self, services: List[SelectedService]) -> None:
        self.set_state(
            selected_services=services,
            appointment_data=self.data.model_copy(
                update={
                    "selected_services": list(services),
                    "duration": _appointment_duration(services),
                }
            ),
        )

    def add_service(self, service: SelectedService) -> None:
        if any(s.id == service.id for s in self.state.selected_services):
            return
        self._set_selected([*self.state.selected_services, service])

    def remove_service(self, service_id: str) -> None:
        self._set_selected([s for s in self.state.selected_services if s.id != service_id])

    def clear_services(self) -> None:
        self._set_selected([])

    def get_total_services_value(self) -> float:
        return sum(service.price for service in self.state.selected_services)

    def get_total_duration(self) -> int:
        return _appointment_duration(self.state.selected_services)

    def reset_appointment(self) -> None:
        self.set_state(
            appointment_data=AppointmentData(),
            current_step=FIRST_STEP,
            selected_services=[],
            error=None,
        )

    # ---------- recent patients ----------
    def add_recent_patient(self, patient: RecentPatient) -> None:
        recent = [patient, *(p for p in self.state.recent_patients if p.cpf != patient.cpf)]
        self.set_state(recent_patients=recent[: settings.recent_patients_limit])

    def load_recent_patients(self, patients: Iterable[Union[RecentPatient, Dict[str, Any]]]) -> None:
        loaded = [RecentPatient.model_validate(p) for p in patients]
        self.set_state(recent_patients=loaded[: settings.recent_patients_limit])

    def recent_patients_snapshot(self) -> List[Dict[str, Any]]:
        return [p.to_api() for p in self.state.recent_patients]

    # ---------- validation ----------
    def can_proceed_from_step(self, step: int) -> bool:
        data = self.data
        if step == 1:
            if data.subject_type == "lead":
                return bool(data.lead_id) and bool(data.patient_name)
            return bool(data.subject) and bool(data.patient_name)
        if step == 2:
            return len(self.state.selected_services) > 0
        if step == 3:
            return bool(data.payment_type)
        if step == 4:
            return bool(data.locationid)
        if step == 5:
            return bool(data.startdate) and bool(data.starttime)
        if step == LAST_STEP:
            return True
        return False

    def is_appointment_complete(self) -> bool:
        data = self.data
        has_subject = (data.subject_type == "lead" and bool(data.lead_id)) or (
            data.subject_type == "patient" and bool(data.subject)
        )
        return has_subject and all(
            [
                data.patient_name,
                data.practitionerid,
                data.locationid,
                data.startdate,
                data.starttime,
                data.servicecategory,
                data.servicetype,
                data.appointmenttype,
                data.payment_type,
            ]
        )

    async def submit(self) -> Any:
        """Create the appointment on the backend and reset the wizard."""
        if not self.is_appointment_complete():
            raise ValueError(INCOMPLETE_APPOINTMENT_MESSAGE)
        if self.api is None:
            raise RuntimeError("AppointmentStore has no ApiService bound")

        self.set_state(is_submitting=True, error=None)
        try:
            result = await self.api.create_appointment(self.data.to_api())
        except ApiError as e:
            logger.error(f"Error creating appointment: {e.status}")
            self.set_state(is_submitting=False, error=e.message)
            raise

        logger.info("Appointment created")
        self.reset_appointment()
        self.set_state(is_submitting=False)
        return result
