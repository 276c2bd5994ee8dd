"""
Test caching of backend lookups.
"""

import time

import pytest

from medpro.models.auth import User
from medpro.services.errors import AuthenticationError
from medpro.utils.cache import CacheManager, cached_lookup, make_key

from tests.conftest import ORGANIZATION


class TestCacheManager:
    """Test cache manager functionality."""

    def test_cache_basic_operations(self):
        """Test basic cache operations."""
        cache = CacheManager(enabled=True)

        cache.set("patient_details", "k1", "value", scope="dr@x.com", ttl=60)

        assert cache.get("patient_details", "k1", scope="dr@x.com") == "value"
        assert cache.get("patient_details", "missing", scope="dr@x.com") is None

    def test_scopes_are_isolated(self):
        cache = CacheManager(enabled=True)

        cache.set("patient_details", "k1", "from dr a", scope="a@x.com", ttl=60)

        assert cache.get("patient_details", "k1", scope="b@x.com") is None

    def test_cache_ttl_expiration(self):
        """Test cache TTL expiration."""
        cache = CacheManager(enabled=True)

        cache.set("ns", "k", "expire_value", ttl=0.1)
        assert cache.get("ns", "k") == "expire_value"

        time.sleep(0.2)
        assert cache.get("ns", "k") is None

    def test_invalidate_by_namespace_and_scope(self):
        cache = CacheManager(enabled=True)
        cache.set("patient_details", "1", "Ana", scope="a@x.com", ttl=60)
        cache.set("patient_details", "2", "Bia", scope="b@x.com", ttl=60)
        cache.set("service_categories", "[]", [], scope="a@x.com", ttl=60)

        assert cache.invalidate(scope="a@x.com") == 2
        assert cache.get("patient_details", "2", scope="b@x.com") == "Bia"

        assert cache.clear() == 1
        assert cache.get_stats()["total_entries"] == 0

    def test_disabled_cache_stores_nothing(self):
        cache = CacheManager(enabled=False)

        cache.set("ns", "key", "value", ttl=60)

        assert cache.get("ns", "key") is None
        assert cache.get_stats()["enabled"] is False

    def test_cache_stats(self):
        """Test cache statistics."""
        cache = CacheManager(enabled=True, ttl=120)
        cache.set("patient_details", "1", "Ana")
        cache.set("patient_details", "2", "Bia")
        cache.set("service_categories", "x", [1])

        stats = cache.get_stats()

        assert stats["total_entries"] == 3
        assert stats["active_entries"] == 3
        assert stats["namespaces"] == {"patient_details": 2, "service_categories": 1}
        assert stats["ttl_seconds"] == 120

    def test_key_generation(self):
        """Test cache key generation."""
        assert make_key("123", page=1) == make_key("123", page=1)
        assert make_key("123", page=1) != make_key("123", page=2)
        assert make_key(object()).startswith("[")


class Lookup:
    """Minimal service shape used by cached_lookup."""

    def __init__(self, scope="dr@x.com"):
        self.cache = CacheManager(enabled=True, ttl=60)
        self.cache_scope = scope
        self.calls = 0

    @cached_lookup("demo")
    async def fetch(self, value):
        self.calls += 1
        return None if value == "none" else f"result_{value}"


class TestCachedLookup:
    """Test the service method decorator."""

    @pytest.mark.asyncio
    async def test_caches_per_arguments(self):
        service = Lookup()

        assert await service.fetch("a") == "result_a"
        assert await service.fetch("a") == "result_a"
        assert await service.fetch("b") == "result_b"

        assert service.calls == 2

    @pytest.mark.asyncio
    async def test_instances_do_not_share_entries(self):
        first, second = Lookup(), Lookup()

        await first.fetch("a")
        await second.fetch("a")

        assert first.calls == second.calls == 1
        assert first.cache.get_stats()["namespaces"] == {"demo": 1}

    @pytest.mark.asyncio
    async def test_scope_change_misses(self):
        service = Lookup()
        await service.fetch("a")

        service.cache_scope = "other@x.com"
        await service.fetch("a")

        assert service.calls == 2

    @pytest.mark.asyncio
    async def test_none_results_are_not_cached(self):
        service = Lookup()

        await service.fetch("none")
        await service.fetch("none")

        assert service.calls == 2


class TestLogoutInvalidation:
    """Cached patient data does not survive a logout or a practitioner switch."""

    @pytest.mark.asyncio
    async def test_logout_clears_patient_details(self, assistant_api, auth, router):
        router.json("GET", "/patient/getpatientdetails/333", {"data": {"id": "333", "name": "João"}})
        await assistant_api.get_patient_details("333")
        assert assistant_api.cache.get_stats()["total_entries"] == 1

        auth.logout()

        assert assistant_api.cache.get_stats()["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_new_practitioner_refetches(self, assistant_api, auth, router):
        router.json("GET", "/patient/getpatientdetails/333", {"data": {"id": "333", "name": "João"}})
        await assistant_api.get_patient_details("333")

        auth.set_user(User(email="dra.cuddy@medpro.com", organization=ORGANIZATION))
        await assistant_api.get_patient_details("333")

        assert router.calls("GET", "/patient/getpatientdetails/333") == 2

    @pytest.mark.asyncio
    async def test_token_expiry_clears_service_categories(self, api, auth, router):
        router.json("GET", "/pract/getservicecategory", [{"id": 1}])
        await api.get_service_categories()
        router.json("GET", "/patient/getpatientdetails/1", {"error_code": "TOKEN_EXPIRED"}, status=401)

        with pytest.raises(AuthenticationError):
            await api.get_patient_details("1")

        assert not auth.state.is_authenticated
        assert api.cache.get_stats()["total_entries"] == 0
