"""
Tests for the authentication store.
"""

import httpx
import pytest

from medpro.services.api import ApiService
from medpro.services.errors import ApiError, AuthenticationError
from medpro.stores.auth_store import AuthStore
from tests.conftest import BASE_URL


@pytest.fixture
def store(http_client):
    auth = AuthStore()
    auth.api = ApiService(auth=auth, base_url=BASE_URL, client=http_client)
    return auth


class TestLogin:
    """Test login and logout."""

    @pytest.mark.asyncio
    async def test_login_sets_user_and_token(self, store, router):
        router.json(
            "POST",
            "/login",
            {
                "token": "abc",
                "user": {"id": 7, "email": "dr@medpro.com", "name": "Dra. Ana"},
                "organization": "ORG-1",
            },
        )

        user = await store.login("dr@medpro.com", "pw")

        assert user.id == "7"
        assert user.name == "Dra. Ana"
        assert store.token == "abc"
        assert store.practitioner_id == "dr@medpro.com"
        assert store.organization == "ORG-1"
        assert store.state.is_authenticated
        assert store.state.is_loading is False

    @pytest.mark.asyncio
    async def test_missing_token_fails(self, store, router):
        router.json("POST", "/login", {"user": {"email": "dr@medpro.com"}})

        with pytest.raises(AuthenticationError):
            await store.login("dr@medpro.com", "pw")

        assert store.state.error
        assert not store.state.is_authenticated

    @pytest.mark.asyncio
    async def test_server_error_recorded(self, store, router):
        router.add("POST", "/login", httpx.Response(500, text="down"))

        with pytest.raises(ApiError):
            await store.login("dr@medpro.com", "pw")

        assert store.state.error == "Erro no servidor. Tente novamente em alguns instantes."

    def test_logout_clears_state(self, auth):
        seen = []
        auth.subscribe(seen.append)

        auth.logout()

        assert auth.token is None
        assert auth.practitioner_id == ""
        assert not auth.state.is_authenticated
        assert len(seen) == 1

    def test_unknown_state_field_rejected(self, auth):
        with pytest.raises(AttributeError):
            auth.set_state(nickname="house")

    def test_unsubscribe(self, auth):
        seen = []
        unsubscribe = auth.subscribe(seen.append)
        unsubscribe()

        auth.clear_error()

        assert seen == []
