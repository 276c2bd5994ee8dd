"""Observable client-side state for the MedPro practitioner client."""

from medpro.stores.appointment_store import AppointmentStore, round_up_to_next_30_min
from medpro.stores.assistant_store import AssistantStore
from medpro.stores.auth_store import AuthStore
from medpro.stores.base import Store
from medpro.stores.patient_history_store import PatientHistoryStore

__all__ = [
    "AppointmentStore",
    "AssistantStore",
    "AuthStore",
    "PatientHistoryStore",
    "Store",
    "round_up_to_next_30_min",
]
