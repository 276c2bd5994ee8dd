"""Authenticated practitioner and bearer token."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from medpro.models.auth import User
from medpro.services.errors import ApiError, AuthenticationError
from medpro.stores.base import Store
from medpro.utils.config import settings
from medpro.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AuthState:
    user: Optional[User] = None
    token: Optional[str] = None
    is_authenticated: bool = False
    is_loading: bool = False
    error: Optional[str] = None


class AuthStore(Store[AuthState]):
    """Credentials shared by every service client."""

    def __init__(self, api: Any = None):
        super().__init__(AuthState())
        self.api = api

    @classmethod
    def from_settings(cls, api: Any = None) -> "AuthStore":
        """Store pre-populated from MEDPRO_TOKEN / MEDPRO_PRACTITIONER_ID."""
        store = cls(api=api)
        if settings.practitioner_id:
            store.set_user(
                User(
                    email=settings.practitioner_id,
                    username=settings.practitioner_id,
                    organization=settings.organization,
                )
            )
        if settings.token:
            store.set_token(settings.token)
        return store

    # ---------- selectors ----------
    @property
    def token(self) -> Optional[str]:
        return self.state.token

    @property
    def user(self) -> Optional[User]:
        return self.state.user

    @property
    def practitioner_id(self) -> str:
        return self.state.user.email if self.state.user else ""

    @property
    def organization(self) -> Optional[str]:
        return self.state.user.organization if self.state.user else None

    # ---------- actions ----------
    async def login(self, username: str, password: str) -> User:
        if self.api is None:
            from medpro.services.api import ApiService

            self.api = ApiService(auth=self)

        logger.info("Login attempt")
        self.set_state(is_loading=True, error=None)
        try:
            data: Dict[str, Any] = await self.api.login(username, password) or {}
            token = data.get("token")
            if not token:
                raise AuthenticationError("Login failed: token ausente na resposta", status=None)
            user_data = data.get("user") or {}
            user = User(
                id=str(user_data.get("id", "")),
                email=user_data.get("email") or username,
                username=user_data.get("username") or username,
                name=user_data.get("name", ""),
                role=user_data.get("role", "practitioner"),
                organization=user_data.get("organization") or data.get("organization"),
            )
        except ApiError as e:
            logger.error(f"Login failed: {e.status}")
            self.set_state(is_loading=False, error=e.message)
            raise

        self.set_state(
            user=user,
            token=token,
            is_authenticated=True,
            is_loading=False,
            error=None,
        )
        logger.info("Login successful")
        return user

    def logout(self) -> None:
        self.set_state(
            user=None,
            token=None,
            is_authenticated=False,
            is_loading=False,
            error=None,
        )

    def set_user(self, user: User) -> None:
        self.set_state(user=user, is_authenticated=True)

    def set_token(self, token: str) -> None:
        self.set_state(token=token, is_authenticated=True)

    def clear_error(self) -> None:
        self.set_state(error=None)
