"""
REST client for the MedPro backend.

Wraps an httpx.AsyncClient with bearer-token and organization headers,
maps error statuses to localized messages, and exposes the patient,
encounter and appointment endpoints used by the stores.
"""

import json
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from medpro.services.errors import ApiError, AuthenticationError
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

UNAUTHENTICATED_MESSAGE = AssistantConfig.UNAUTHENTICATED_TEXT
TOKEN_EXPIRED_MESSAGE = "Sua sessão expirou. Por favor, faça login novamente."
UNAUTHORIZED_MESSAGE = "Não autorizado. Verifique suas credenciais."
FORBIDDEN_MESSAGE = "Acesso negado. Você não tem permissão para esta operação."
NOT_FOUND_MESSAGE = "Recurso não encontrado."
SERVER_ERROR_MESSAGE = "Erro no servidor. Tente novamente em alguns instantes."
RATE_LIMIT_MESSAGE = "Muitas requisições. Aguarde alguns instantes e tente novamente."
GENERIC_ERROR_MESSAGE = "Erro ao processar sua solicitação. Tente novamente."
CONNECTION_ERROR_MESSAGE = "Não foi possível conectar ao servidor. Verifique sua conexão."

OPEN_ENCOUNTER_FILTER = {"filter1": "in-progress", "filter2": "on-hold", "filter3": ""}
COMPLETED_ENCOUNTER_FILTER = {"filter1": "finished", "filter2": "completed", "filter3": ""}


def encode_path(value: str) -> str:
    """Percent-encode a single path segment (emails, CPFs, blob names)."""
    return quote(str(value), safe="")


def is_history_endpoint(endpoint: str) -> bool:
    return any(marker in endpoint for marker in AssistantConfig.HISTORY_ENDPOINT_MARKERS)


class ApiService:
    """HTTP client for the MedPro REST backend."""

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
        self.cache = cache or CacheManager(ttl=settings.cache_ttl)
        if auth is not None:
            auth.subscribe(self._on_auth_change)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    # ---------- headers ----------
    @property
    def token(self) -> Optional[str]:
        return self.auth.token if self.auth else None

    @property
    def practitioner_id(self) -> str:
        return self.auth.practitioner_id if self.auth else ""

    @property
    def cache_scope(self) -> str:
        return self.practitioner_id

    def _on_auth_change(self, state: Any) -> None:
        if not state.is_authenticated:
            dropped = self.cache.clear()
            if dropped:
                logger.info(f"Dropped {dropped} cached lookups after logout")

    def get_auth_headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"} if json_body else {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get_org_headers(self, pract_id: Optional[str] = None) -> Dict[str, str]:
        organization = self.auth.organization if self.auth else ""
        return {
            "managingorg": organization or "",
            "practid": pract_id or self.practitioner_id or "",
        }

    # ---------- core request ----------
    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        json_body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        require_auth: bool = True,
    ) -> Any:
        """Send a JSON request and return the decoded body."""
        if require_auth and not self.token:
            raise AuthenticationError(UNAUTHENTICATED_MESSAGE, status=401)

        url = get_api_url(endpoint, self.base_url)
        request_headers = {**self.get_auth_headers(), **(headers or {})}

        logger.debug(
            f"Request {method} {endpoint}",
            extra={"extra_fields": {"headers": redact_headers(request_headers)}},
        )

        try:
            response = await self.client.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {endpoint}: {type(e).__name__}")
            raise ApiError(CONNECTION_ERROR_MESSAGE, details=str(e)) from e

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                logger.error(f"Malformed response body from {endpoint}: {type(e).__name__}")
                raise ApiError(
                    GENERIC_ERROR_MESSAGE, status=response.status_code, details=response.text
                ) from e

        return self._handle_error_response(endpoint, response)

    def _handle_error_response(self, endpoint: str, response: httpx.Response) -> Any:
        status = response.status_code

        # Patient history endpoints answer 404 when nothing was recorded
        if status == 404 and is_history_endpoint(endpoint):
            logger.debug("404 response treated as empty data for endpoint")
            return []

        error_text = response.text
        logger.error(f"API error response: {status} for {endpoint}")

        if status == 401:
            error_code = None
            try:
                error_code = json.loads(error_text).get("error_code")
            except (ValueError, AttributeError):
                logger.warning("Could not parse 401 error response")
            if error_code == "TOKEN_EXPIRED":
                logger.info("Token expired - logging out user")
                if self.auth:
                    self.auth.logout()
                raise AuthenticationError(TOKEN_EXPIRED_MESSAGE, status=status, details=error_text)
            raise AuthenticationError(UNAUTHORIZED_MESSAGE, status=status, details=error_text)

        if status == 403:
            message = FORBIDDEN_MESSAGE
        elif status == 404:
            message = NOT_FOUND_MESSAGE
        elif status >= 500:
            message = SERVER_ERROR_MESSAGE
        elif status == 429:
            message = RATE_LIMIT_MESSAGE
        else:
            message = GENERIC_ERROR_MESSAGE
        raise ApiError(message, status=status, details=error_text)

    # ---------- auth ----------
    async def login(self, username: str, password: str) -> Dict[str, Any]:
        return await self.request(
            "/login",
            method="POST",
            json_body={"username": username, "password": password},
            require_auth=False,
        )

    async def request_password_reset(self, email: str) -> Dict[str, Any]:
        return await self.request(
            "/login/forgot-password",
            method="POST",
            json_body={"email": email.strip()},
            require_auth=False,
        )

    async def check_health(self) -> bool:
        try:
            response = await self.client.get(get_api_url("/health", self.base_url))
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed: {type(e).__name__}")
            return False

    # ---------- patients ----------
    @monitor_latency("api_patient_details", "/patient/getpatientdetails")
    async def get_patient_details(self, cpf: str) -> Any:
        try:
            result = await self.request(
                f"/patient/getpatientdetails/{encode_path(cpf)}",
                headers=self.get_org_headers(),
            )
            compliance_logger.log_data_access(
                resource_type="patient",
                resource_id=mask_identifier(cpf),
                user_id=self.practitioner_id,
                operation="read",
                success=True,
            )
            return result
        except ApiError as e:
            compliance_logger.log_data_access(
                resource_type="patient",
                resource_id=mask_identifier(cpf),
                user_id=self.practitioner_id,
                operation="read",
                success=False,
                error=e.message,
            )
            logger.error(f"Failed to get patient details: {e.message}")
            raise

    async def get_patients(
        self, pract_id: str, page: int = 1, limit: int = 20, search: str = ""
    ) -> Any:
        params = {
            "page": page,
            "limit": limit,
            "filter": search,
            "orderBy": "name",
            "order": "ASC",
        }
        return await self.request(
            f"/patient/listpatients/{encode_path(pract_id)}",
            params=params,
            headers=self.get_org_headers(pract_id),
        )

    async def search_patients(self, search_term: str, page: int = 1, limit: int = 10) -> Any:
        # the backend searches name, CPF and phone through the same parameter
        params = {"name": search_term.strip(), "page": page, "limit": limit}
        try:
            return await self.request(
                f"/patient/getpatientbyname/{encode_path(self.practitioner_id)}",
                params=params,
                headers=self.get_org_headers(),
            )
        except ApiError as e:
            logger.error(f"Failed to search patients: {e.message}")
            raise

    async def get_patient_appointments(self, patient_cpf: str) -> Any:
        return await self.request(
            f"/appointment/getnextpatientappointments/{encode_path(patient_cpf)}",
            headers=self.get_org_headers(),
        )

    # ---------- encounters ----------
    @monitor_latency("api_patient_encounters", "/encounter/getencounters/patient")
    async def get_patient_encounters(
        self,
        patient_cpf: str,
        page: int = 1,
        limit: int = 10,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
    ) -> Any:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if from_date:
            params["fromdate"] = from_date
        if to_date:
            params["todate"] = to_date
        return await self.request(
            f"/encounter/getencounters/patient/{encode_path(patient_cpf)}",
            params=params,
            headers=self.get_org_headers(),
        )

    async def get_in_progress_encounters(self, pract_id: str) -> Any:
        params = {"page": 1, "limit": 10, "status": json.dumps(OPEN_ENCOUNTER_FILTER)}
        return await self.request(
            f"/encounter/getencounters/practitioner/{encode_path(pract_id)}",
            params=params,
            headers=self.get_org_headers(pract_id),
        )

    async def get_practitioner_encounters(
        self, pract_id: str, page: int = 1, limit: int = 20, status_filter: str = "ALL"
    ) -> Any:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status_filter == "OPEN":
            params["status"] = json.dumps(OPEN_ENCOUNTER_FILTER)
        elif status_filter == "COMPLETED":
            params["status"] = json.dumps(COMPLETED_ENCOUNTER_FILTER)
        return await self.request(
            f"/encounter/getencounters/practitioner/{encode_path(pract_id)}",
            params=params,
            headers=self.get_org_headers(pract_id),
        )

    async def get_encounter_clinical_records(
        self, encounter_id: str, page: int = 1, limit: int = 10, record_type: Optional[str] = None
    ) -> Any:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if record_type:
            params["type"] = record_type
        return await self.request(
            f"/clinical/records/encounter/{encode_path(encounter_id)}",
            params=params,
            headers=self.get_org_headers(),
        )

    async def get_encounter_medications(
        self, patient_cpf: str, encounter_id: str, page: int = 1, limit: int = 10
    ) -> Any:
        params = {
            "encounter": encounter_id,
            "page": page,
            "limit": limit,
            "pract": self.practitioner_id,
        }
        return await self.request(
            f"/medication/records/{encode_path(patient_cpf)}",
            params=params,
            headers=self.get_org_headers(),
        )

    async def get_encounter_diagnostics(self, encounter_id: str) -> Any:
        return await self.request(
            f"/diagnostic/encounter/{encode_path(encounter_id)}",
            headers=self.get_org_headers(),
        )

    async def get_encounter_images(self, encounter_id: str) -> Any:
        return await self.request(
            f"/images/encounter/{encode_path(encounter_id)}",
            headers=self.get_org_headers(),
        )

    async def get_encounter_attachments(self, encounter_id: str) -> Any:
        return await self.request(
            f"/attach/getbyencounter/{encode_path(encounter_id)}",
            headers=self.get_org_headers(),
        )

    async def append_mobile_note(self, encounter_id: str, note_text: str) -> Any:
        try:
            return await self.request(
                f"/encounter/append-mobile-note/{encode_path(encounter_id)}",
                method="POST",
                json_body={"noteText": note_text},
                headers=self.get_org_headers(),
            )
        except ApiError as e:
            logger.error(f"Failed to append mobile note: {e.message}")
            raise

    # ---------- appointments ----------
    async def get_appointment_setup(
        self, practitioner_email: str, include_inactive: bool = False
    ) -> Any:
        params = {"includeInactive": "true"} if include_inactive else None
        return await self.request(
            f"/pract/{encode_path(practitioner_email)}/appointment-setup",
            params=params,
            headers=self.get_org_headers(practitioner_email),
        )

    async def get_practitioner_locations(self, practitioner_email: str) -> Any:
        return await self.request(
            f"/location/getpractlocationsbyemail/{encode_path(practitioner_email)}/",
            params={"status": "active"},
            headers=self.get_org_headers(),
        )

    async def get_available_dates(
        self, practitioner_id: str, location_id: str, year: int, month: int, duration: int = 60
    ) -> Any:
        params = {
            "practitionerId": practitioner_id,
            "locationId": location_id,
            "year": year,
            "month": month,
            "duration": duration,
        }
        return await self.request(
            "/appointment/available-dates", params=params, headers=self.get_org_headers()
        )

    async def get_available_times(
        self, practitioner_id: str, location_id: str, date: str, duration: int = 60
    ) -> Any:
        params = {
            "practitionerId": practitioner_id,
            "locationId": location_id,
            "date": date,
            "duration": duration,
        }
        return await self.request(
            "/appointment/available-times", params=params, headers=self.get_org_headers()
        )

    async def get_next_five_slots(
        self, practitioner_id: str, location_id: str, duration: int = 60
    ) -> Any:
        params = {
            "practitionerId": practitioner_id,
            "locationId": location_id,
            "duration": duration,
        }
        return await self.request(
            "/appointment/next-five-slots", params=params, headers=self.get_org_headers()
        )

    async def get_practitioner_appointments(
        self, pract_id: str, page: int = 1, limit: int = 100, future: Optional[str] = None
    ) -> Any:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if future:
            params["future"] = future
        return await self.request(
            f"/appointment/getappointments/{encode_path(pract_id)}",
            params=params,
            headers=self.get_org_headers(),
        )

    @monitor_latency("api_create_appointment", "/appointment/create-appointment")
    async def create_appointment(self, appointment: Dict[str, Any]) -> Any:
        try:
            return await self.request(
                "/appointment/create-appointment",
                method="POST",
                json_body=appointment,
                headers=self.get_org_headers(),
            )
        except ApiError as e:
            logger.error(f"createAppointment error: {e.message}")
            raise

    async def cancel_appointment(self, appointment_id: str) -> Any:
        try:
            return await self.request(
                f"/appointment/cancel/{encode_path(appointment_id)}",
                method="POST",
                headers=self.get_org_headers(),
            )
        except ApiError as e:
            logger.error(f"cancelAppointment error: {e.status}")
            if e.status == 404:
                message = "Agendamento não encontrado."
            elif e.status == 403:
                message = "Você não tem permissão para cancelar este agendamento."
            elif e.status == 409:
                message = "Este agendamento já foi cancelado."
            else:
                message = "Erro ao cancelar agendamento. Tente novamente."
            raise ApiError(message, status=e.status, details=e.details) from e

    @cached_lookup("service_categories")
    async def get_service_categories(self) -> List[Dict[str, Any]]:
        """Service category catalog, cached for the signed-in practitioner."""
        return await self.request("/pract/getservicecategory")
