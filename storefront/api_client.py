import json
import logging
from typing import Any, Dict, Optional

import httpx

from storefront.errors import ApiError

logger = logging.getLogger(__name__)


# ---------- tolerant response helpers ----------
def pick(d: dict, *keys: str, default=None):
    """Returns the first present, non-null value among several possible keys."""
    if not isinstance(d, dict):
        return default
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def normalize_list(maybe_list_or_wrapper) -> list:
    """
    Always returns a list.
    - a list is returned as is
    - a wrapper dict ({"data": [...]}, {"branches": [...]}, {"data": {"products": [...]}})
      yields the first list found, one level of nesting deep
    - anything else -> []
    """
    if isinstance(maybe_list_or_wrapper, list):
        return maybe_list_or_wrapper
    if isinstance(maybe_list_or_wrapper, dict):
        for val in maybe_list_or_wrapper.values():
            if isinstance(val, list):
                return val
        for val in maybe_list_or_wrapper.values():
            if isinstance(val, dict):
                nested = normalize_list(val)
                if nested:
                    return nested
    return []


def unwrap(result: Any, *keys: str) -> Any:
    """Backend answers ``{"success": true, "data": {...}}``; dig out ``data`` then ``keys``."""
    data = result.get("data", result) if isinstance(result, dict) else result
    for key in keys:
        if isinstance(data, dict) and key in data:
            return data[key]
    return data


def parse_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return {"message": "Invalid response format"}
    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        return {"message": text or "Request failed"}


def error_message(result: Any) -> Optional[str]:
    if not isinstance(result, dict):
        return None
    errors = result.get("errors")
    if isinstance(errors, list) and errors:
        joined = ", ".join(
            f"{pick(e, 'field', default='')}: {pick(e, 'message', default='')}" for e in errors if isinstance(e, dict)
        )
        return joined or result.get("message") or "Validation failed"
    return result.get("message") or result.get("error")


class ApiClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str, token: Optional[str] = None):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.token = token

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request(self, method: str, endpoint: str, data: Any = None, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self.http.request(method, url, json=data, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %r", method, url, e)
            raise ApiError(str(e) or None) from e

        result = parse_body(response)
        if not response.is_success:
            logger.info("%s %s -> %s", method, url, response.status_code)
            raise ApiError(error_message(result), status=response.status_code)
        return result

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("POST", endpoint, data=data)

    async def put(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("PUT", endpoint, data=data)

    async def patch(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("PATCH", endpoint, data=data)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)


class SupabaseClient:
    """Minimal PostgREST access (``/rest/v1/<table>``) with equality filters."""

    def __init__(self, http: httpx.AsyncClient, url: str, key: str, token: Optional[str] = None):
        self.http = http
        self.url = url.rstrip("/")
        self.key = key
        self.token = token

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.token or self.key}",
            "Accept": "application/json",
        }
        headers.update(extra)
        return headers

    async def _send(self, method: str, table: str, params: dict, body: Any = None, **headers: str) -> Any:
        url = f"{self.url}/rest/v1/{table}"
        try:
            response = await self.http.request(method, url, params=params, json=body, headers=self._headers(**headers))
        except httpx.HTTPError as e:
            logger.warning("supabase %s %s failed: %r", method, table, e)
            raise ApiError(str(e) or None) from e
        result = parse_body(response)
        if not response.is_success:
            raise ApiError(error_message(result), status=response.status_code)
        return result

    @staticmethod
    def _filters(filters: Dict[str, Any]) -> Dict[str, str]:
        return {column: f"eq.{value}" for column, value in filters.items()}

    async def select_one(self, table: str, columns: str = "*", **filters: Any) -> Optional[dict]:
        params = {"select": columns, "limit": "1", **self._filters(filters)}
        rows = normalize_list(await self._send("GET", table, params))
        return rows[0] if rows else None
