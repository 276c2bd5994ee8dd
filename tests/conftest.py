"""
Shared fixtures: an authenticated store and an httpx MockTransport router.
"""

import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest

from medpro.models.auth import User
from medpro.services.api import ApiService
from medpro.services.assistant_api import AssistantApiService
from medpro.stores.auth_store import AuthStore
from medpro.utils.cache import CacheManager

BASE_URL = "https://api.test"
PRACTITIONER = "dr.house@medpro.com"
ORGANIZATION = "ORG-000006"
TOKEN = "secret-token"

Handler = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class Router:
    """Maps (method, path) to canned responses and records every request."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Handler]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Handler) -> "Router":
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def json(self, method: str, path: str, body: Any = None, status: int = 200) -> "Router":
        return self.add(method, path, httpx.Response(status, json=body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        handlers = self.routes.get(key)
        if not handlers:
            return httpx.Response(599, text=f"no route for {key}")
        # the last handler repeats once the queue is drained
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        if isinstance(handler, httpx.Response):
            # fresh copy so a canned response can be served repeatedly
            return httpx.Response(
                handler.status_code, headers=handler.headers, content=handler.content
            )
        return handler(request)

    def last(self, method: str = None, path: str = None) -> httpx.Request:
        for request in reversed(self.requests):
            if method and request.method != method:
                continue
            if path and request.url.path != path:
                continue
            return request
        raise AssertionError(f"no request matching {method} {path}")

    def calls(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode())


@pytest.fixture
def router():
    return Router()


@pytest.fixture
def auth():
    store = AuthStore()
    store.set_user(
        User(
            id="1",
            email=PRACTITIONER,
            username=PRACTITIONER,
            name="Dr. House",
            organization=ORGANIZATION,
        )
    )
    store.set_token(TOKEN)
    return store


@pytest.fixture
def http_client(router):
    return httpx.AsyncClient(transport=httpx.MockTransport(router))


@pytest.fixture
def api(auth, http_client):
    return ApiService(
        auth=auth,
        base_url=BASE_URL,
        client=http_client,
        cache=CacheManager(enabled=True, ttl=60),
    )


@pytest.fixture
def assistant_api(auth, http_client):
    return AssistantApiService(
        auth=auth,
        base_url=BASE_URL,
        client=http_client,
        cache=CacheManager(enabled=True, ttl=60),
    )
