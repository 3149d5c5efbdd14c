"""
REST Backend Client Implementation

Production implementation speaking the PostgREST dialect exposed by the
hosted backend. Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - BACKEND_URL and BACKEND_ANON_KEY must be set in environment
    - BACKEND_SERVICE_KEY is used as bearer token when present

Wire format:
    GET    /rest/v1/<table>?select=...&col=op.value&order=col.desc&limit=n
    POST   /rest/v1/<table>                (Prefer: return=representation)
    PATCH  /rest/v1/<table>?col=op.value   (Prefer: return=representation)
    POST   /rest/v1/rpc/<procedure>        (JSON body of named params)
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Optional, Sequence

import httpx

from pos_gateway.core.config import get_settings
from pos_gateway.backend.base import BaseBackendClient, Filter, OrderBy
from pos_gateway.exceptions import BackendError

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    """Render a Python value the way PostgREST expects it in a query string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _format_list_item(value: Any) -> str:
    text = _format_value(value)
    if any(ch in text for ch in ',()"'):
        escaped = text.replace('"', '\\"')
        return f'"{escaped}"'
    return text


def encode_filter(f: Filter) -> tuple[str, str]:
    """
    Encode a filter as a query parameter pair.

    Example:
        >>> encode_filter(in_("status", ["pending", "ready"]))
        ('status', 'in.(pending,ready)')
    """
    if f.op == "in":
        inner = ",".join(_format_list_item(v) for v in f.value)
        return f.column, f"in.({inner})"
    if f.op == "ilike":
        return f.column, f"ilike.{str(f.value).replace('%', '*')}"
    if f.op == "is":
        return f.column, f"is.{_format_value(f.value)}"
    return f.column, f"{f.op}.{_format_value(f.value)}"


def encode_order(order: Sequence[OrderBy]) -> str:
    return ",".join(
        f"{o.column}.{'desc' if o.descending else 'asc'}" for o in order
    )


class RestBackendClient(BaseBackendClient):
    """
    Hosted backend client over HTTP.

    Example:
        >>> backend = RestBackendClient()
        >>> result = await backend.rpc(
        ...     "update_order_status",
        ...     {"p_order_id": "...", "p_new_status": "ready", "p_expected_version": 3},
        ... )
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client from arguments or settings.

        Raises:
            ValueError: If the backend URL or API key is not configured
        """
        settings = get_settings()

        base_url = base_url or settings.backend_url
        api_key = api_key or settings.backend_anon_key
        service_key = service_key or settings.backend_service_key

        if not base_url or not api_key:
            raise ValueError(
                "BACKEND_URL and BACKEND_ANON_KEY are required outside development mode. "
                "Set them in your .env file or environment variables."
            )

        self._base_url = base_url.rstrip("/")
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {service_key or api_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout if timeout is not None else settings.backend_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"RestBackendClient initialized ({self._base_url})")

    @property
    def provider_name(self) -> str:
        return "rest"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self._base_url}/rest/v1",
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[list[tuple[str, str]]] = None,
        body: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None

        try:
            response = await self._get_client().request(
                method,
                path,
                params=params,
                json=body,
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"Backend: {method} {path} failed - {e}")
            raise BackendError(
                "Backend temporarily unavailable",
                code="connection_error",
                detail=str(e),
            ) from e

        if response.status_code >= 400:
            message, code, detail = self._parse_error(response)
            logger.warning(
                f"Backend: {method} {path} -> {response.status_code} {code}: {message}"
            )
            raise BackendError(message, code=code, status=response.status_code, detail=detail)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _parse_error(response: httpx.Response) -> tuple[str, Optional[str], Optional[str]]:
        try:
            payload = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}", None, None
        if not isinstance(payload, dict):
            return str(payload), None, None
        return (
            payload.get("message") or f"HTTP {response.status_code}",
            payload.get("code"),
            payload.get("details") or payload.get("hint"),
        )

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Sequence[Filter]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, str]] = [("select", "".join(columns.split()))]
        params.extend(encode_filter(f) for f in (filters or []))
        if order:
            params.append(("order", encode_order(order)))
        if limit is not None:
            params.append(("limit", str(limit)))

        logger.debug(f"Backend: select {table} {params}")
        return await self._request("GET", f"/{table}", params=params) or []

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "POST",
            f"/{table}",
            body=row,
            prefer="return=representation",
        )
        if isinstance(rows, list):
            if not rows:
                raise BackendError(f"Insert into {table} returned no row")
            return rows[0]
        return rows

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Sequence[Filter],
    ) -> list[dict[str, Any]]:
        if not filters:
            # PostgREST refuses unfiltered updates; fail before the round trip.
            raise BackendError(f"Refusing to update every row of {table}")
        params = [encode_filter(f) for f in filters]
        return await self._request(
            "PATCH",
            f"/{table}",
            params=params,
            body=values,
            prefer="return=representation",
        ) or []

    async def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> Any:
        logger.debug(f"Backend: rpc {name}")
        data = await self._request("POST", f"/rpc/{name}", body=params or {})
        # Some procedures return their JSON payload as a text value
        if isinstance(data, str):
            try:
                return json.loads(data)
            except json.JSONDecodeError:
                return data
        return data

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/", params=None)
            logger.debug("Backend: Health check passed")
            return True
        except BackendError as e:
            logger.error(f"Backend: Health check failed - {e.message}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
