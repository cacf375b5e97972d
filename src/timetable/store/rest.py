"""PostgREST-style HTTP adapter for the relational store.

Speaks the query-string dialect used by PostgREST and Supabase
(``col=eq.value``, ``col=in.(a,b)``, ``order=col.desc``). Requests are made
with ``requests`` in a worker thread so the async core is never blocked;
transient failures of reads, updates and deletes are retried with tenacity.
Inserts are sent once: without an idempotency key a retried POST could
duplicate the row.
"""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.timetable.config import TimetableConfig, get_config
from src.timetable.errors import (
    PermanentStoreError,
    RateLimitedError,
    TransientStoreError,
)
from src.timetable.logging import get_logger
from src.timetable.store.base import MEMBERSHIP_TYPES, Filters

logger = get_logger(__name__)

_RESERVED = set(',()"\\ ')


def _literal(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    text = str(value)
    if any(ch in _RESERVED for ch in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def filter_params(filters: Filters | None) -> dict[str, str]:
    """Translate a filter mapping into PostgREST query parameters."""
    params: dict[str, str] = {}
    for column, value in (filters or {}).items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, MEMBERSHIP_TYPES):
            params[column] = "in.(" + ",".join(_literal(v) for v in value) + ")"
        else:
            params[column] = f"eq.{_literal(value)}"
    return params


def order_param(ordering: Sequence[str]) -> str:
    return ",".join(
        f"{column[1:]}.desc" if column.startswith("-") else f"{column}.asc"
        for column in ordering
    )


class RestStore:
    """DataStore backed by a PostgREST endpoint.

    Args:
        base_url: Endpoint root, e.g. https://project.supabase.co/rest/v1.
        api_key: Sent as both ``apikey`` header and bearer token.
        timeout: Per-request timeout in seconds.
        max_attempts: Attempts per call for transient failures.
        retry_wait: Exponential backoff multiplier in seconds.
        session: Optional pre-configured requests session.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 15.0,
        max_attempts: int = 3,
        retry_wait: float = 0.5,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_config(cls, config: TimetableConfig | None = None) -> "RestStore":
        config = config or get_config()
        return cls(
            config.store_url,
            config.store_api_key,
            timeout=config.store_timeout_seconds,
            max_attempts=config.store_max_attempts,
        )

    async def select(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        filters: Filters | None = None,
        ordering: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        params = filter_params(filters)
        params["select"] = ",".join(columns) if columns else "*"
        if ordering:
            params["order"] = order_param(ordering)
        return await asyncio.to_thread(self._request, "GET", table, params)

    async def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        rows = await asyncio.to_thread(
            self._request, "POST", table, None, dict(row), True, False
        )
        return rows[0] if rows else {}

    async def update(
        self, table: str, patch: Mapping[str, Any], filters: Filters
    ) -> list[dict[str, Any]]:
        if not filters:
            raise PermanentStoreError("update without filters refused")
        return await asyncio.to_thread(
            self._request, "PATCH", table, filter_params(filters), dict(patch), True
        )

    async def delete(self, table: str, filters: Filters) -> int:
        if not filters:
            raise PermanentStoreError("delete without filters refused")
        rows = await asyncio.to_thread(
            self._request, "DELETE", table, filter_params(filters), None, True
        )
        return len(rows)

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        representation: bool = False,
        retry: bool = True,
    ) -> list[dict[str, Any]]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts if retry else 1),
            wait=wait_exponential(multiplier=self.retry_wait, max=8),
            retry=retry_if_exception_type(TransientStoreError),
            reraise=True,
        )
        return retrying(self._send, method, table, params, body, representation)

    def _send(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None,
        body: dict[str, Any] | None,
        representation: bool,
    ) -> list[dict[str, Any]]:
        headers = dict(self.headers)
        if representation:
            headers["Prefer"] = "return=representation"
        url = f"{self.base_url}/{table}"

        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning("store_timeout", method=method, table=table, error=str(e))
            raise TransientStoreError(f"{method} {table} timed out: {e}") from e
        except requests.ConnectionError as e:
            logger.warning("store_unreachable", method=method, table=table, error=str(e))
            raise TransientStoreError(f"{method} {table} failed: {e}") from e

        status = resp.status_code
        if status == 429:
            logger.warning("store_rate_limited", method=method, table=table)
            raise RateLimitedError(f"{method} {table} rate limited")
        if status >= 500:
            logger.warning("store_server_error", method=method, table=table, status=status)
            raise TransientStoreError(f"{method} {table} returned {status}")
        if status >= 400:
            logger.error(
                "store_request_rejected",
                method=method,
                table=table,
                status=status,
                body=resp.text[:200],
            )
            raise PermanentStoreError(f"{method} {table} returned {status}: {resp.text[:200]}")

        if not resp.content:
            return []
        try:
            payload = resp.json()
        except ValueError as e:
            raise PermanentStoreError(f"{method} {table} returned invalid JSON") from e

        if isinstance(payload, dict):
            return [payload]
        if isinstance(payload, list):
            return payload
        raise PermanentStoreError(f"{method} {table} returned unexpected payload")
