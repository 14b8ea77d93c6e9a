"""Minimal GraphQL transport over httpx."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..errors import RateLimitError, RemoteServiceError, is_rate_limit_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GraphQLClient:
    """POSTs GraphQL documents and unwraps ``data``/``errors``.

    Pass ``transport`` (for example ``httpx.MockTransport``) or a ready
    ``client`` to avoid network access in tests.
    """

    def __init__(
        self,
        endpoint: str,
        headers: Mapping[str, str],
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self._headers = dict(headers)
        self._client = client
        self._transport = transport
        self._timeout = timeout

    async def execute(self, query: str, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        payload = {"query": query, "variables": dict(variables or {})}
        if self._client is not None:
            response = await self._client.post(self.endpoint, json=payload, headers=self._headers)
        else:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=self._headers)
        return self._unwrap(response)

    def _unwrap(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}

        errors = body.get("errors") if isinstance(body, dict) else None
        if response.status_code == 429:
            raise RateLimitError(f"{self.endpoint} returned 429", errors=errors)
        if errors:
            message = "; ".join(str(item.get("message", item)) for item in errors if isinstance(item, dict))
            error = RemoteServiceError(message or "GraphQL request failed", errors=errors)
            if is_rate_limit_error(error):
                raise RateLimitError(error.args[0], errors=errors)
            raise error
        if response.status_code >= 400:
            raise RemoteServiceError(f"{self.endpoint} returned HTTP {response.status_code}")

        data = body.get("data") if isinstance(body, dict) else None
        if data is None:
            raise RemoteServiceError("GraphQL response carried no data")
        return data


__all__ = ["GraphQLClient"]
