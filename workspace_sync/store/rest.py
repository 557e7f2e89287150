"""
Thin async client for the hosted table store.

Speaks the PostgREST dialect exposed under ``/rest/v1``: ``eq.`` filters in the query
string, ``order=<column>.<asc|desc>``, ``Prefer: return=representation`` to get rows
back from writes, and ``resolution=merge-duplicates`` plus ``on_conflict`` for upserts.
Every failure (transport or HTTP status) is raised as ``StoreError``; deciding what a
failure means is left to the domain services.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..errors import StoreError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
TokenProvider = Callable[[], Optional[str]]


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class RemoteStore:
    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(base_url=f"{url.rstrip('/')}/rest/v1", timeout=timeout, transport=transport)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        token = (self._token_provider() if self._token_provider else None) or self._api_key
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _match_params(match: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {column: _filter_value(value) for column, value in (match or {}).items()}

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, f"/{table}", params=params, json=json, headers=self._headers(prefer))
        except httpx.HTTPError as error:
            raise StoreError(f"{method} {table} failed: {error}") from error

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            raise StoreError(
                payload.get("message") or response.reason_phrase or f"HTTP {response.status_code}",
                code=payload.get("code") or str(response.status_code),
                details=payload.get("details") or payload.get("hint"),
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as error:
            raise StoreError(f"{method} {table} returned an unreadable body", code=str(response.status_code)) from error

    async def select(
        self,
        table: str,
        *,
        match: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
        ascending: bool = True,
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> List[Row]:
        params = {"select": columns, **self._match_params(match)}
        if order:
            params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
        if limit is not None:
            params["limit"] = str(limit)
        data = await self._request("GET", table, params=params)
        return list(data or [])

    async def select_one(self, table: str, *, match: Dict[str, Any], columns: str = "*") -> Optional[Row]:
        rows = await self.select(table, match=match, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: Row) -> Row:
        data = await self._request("POST", table, json=row, prefer="return=representation")
        if isinstance(data, list):
            if not data:
                raise StoreError(f"Insert into {table} returned no row")
            return data[0]
        return data

    async def update(self, table: str, values: Row, *, match: Dict[str, Any]) -> List[Row]:
        data = await self._request("PATCH", table, params=self._match_params(match), json=values, prefer="return=representation")
        return list(data or [])

    async def upsert(self, table: str, row: Row, *, on_conflict: str) -> Row:
        data = await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        if isinstance(data, list):
            return data[0] if data else row
        return data or row

    async def delete(self, table: str, *, match: Dict[str, Any]) -> None:
        if not match:
            raise StoreError(f"Refusing to delete from {table} without a filter")
        await self._request("DELETE", table, params=self._match_params(match))

    async def aclose(self) -> None:
        await self._client.aclose()
