import json

import httpx
import pytest

from storefront.api_client import ApiClient, SupabaseClient
from storefront.cart import CartStore
from storefront.schemas import Address, CartItem, User
from storefront.storage import MemoryStorage

API_BASE = "http://api.test/api"
PRODUCT_UUID = "123e4567-e89b-12d3-a456-426614174000"


def make_item(**overrides) -> CartItem:
    data = {
        "id": "p1",
        "type": "product",
        "title_ar": "برجر",
        "title_en": "Burger",
        "quantity": 1,
        "totalPrice": 50.0,
        "branch_id": "b1",
    }
    data.update(overrides)
    return CartItem(**data)


def make_address(**overrides) -> Address:
    data = {
        "id": "a1",
        "title": "Home",
        "street": "Tahrir St",
        "city": "Cairo",
        "area": "Downtown",
        "latitude": 30.04,
        "longitude": 31.23,
        "is_default": True,
    }
    data.update(overrides)
    return Address(**data)


def make_user(**overrides) -> User:
    data = {"id": "u1", "email": "ali@example.com", "full_name": "Ali Hassan", "phone": "01000000000"}
    data.update(overrides)
    return User(**data)


class FakeClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


class Backend:
    """
    Mock HTTP backend for httpx.MockTransport.

    ``routes`` maps ``(method, path)`` to ``(status, json_body)`` or to a list
    of those, answered in order (the last one repeats). Every request is kept.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.routes.get((request.method, request.url.path))
        if entry is None:
            return httpx.Response(404, json={"success": False, "message": "Not found"})
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        status, body = entry
        return httpx.Response(status, json=body)

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def body(self, method, path, index=-1):
        return json.loads(self.calls(method, path)[index].content)


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
async def http(backend):
    async with httpx.AsyncClient(transport=httpx.MockTransport(backend)) as client:
        yield client


@pytest.fixture
def api(http):
    return ApiClient(http, API_BASE)


@pytest.fixture
def supabase(http):
    return SupabaseClient(http, "http://supabase.test", "anon-key")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CartStore(MemoryStorage(), clock=clock)
