"""Prometheus HTTP API client with retry logic."""

import asyncio
from datetime import datetime
from typing import Any

import httpx

from monitoring.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
MAX_RETRIES = 3
BASE_BACKOFF = 0.5


class PrometheusError(Exception):
    """Prometheus query failed (transport, HTTP or API error)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PrometheusClient:
    """Async Prometheus API client with retry logic."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff: float = BASE_BACKOFF,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Prometheus client.

        Args:
            base_url: Prometheus server URL (e.g., "http://localhost:9090")
            timeout: Request timeout in seconds
            max_retries: Attempts for 5xx and transport errors
            backoff: Base delay of the exponential backoff in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """Run a query with retry logic.

        Args:
            path: API path (e.g., "/api/v1/query")
            params: Query parameters

        Returns:
            The ``data`` member of a successful response

        Raises:
            PrometheusError: On API error or after retries are exhausted
        """
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            wait_time = self.backoff * (2 ** attempt)
            try:
                response = await client.get(path, params=params)
            except httpx.RequestError as e:
                logger.warning(
                    f"Prometheus request error: {e}, retry in {wait_time}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                last_error = e
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait_time)
                continue

            if response.status_code >= 500:
                logger.warning(
                    f"Prometheus server error {response.status_code}, "
                    f"retry in {wait_time}s (attempt {attempt + 1}/{self.max_retries})"
                )
                last_error = PrometheusError(
                    f"Server error: {response.status_code}",
                    status_code=response.status_code,
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait_time)
                continue

            try:
                payload = response.json()
            except ValueError:
                raise PrometheusError(
                    f"Invalid JSON from Prometheus (HTTP {response.status_code})",
                    status_code=response.status_code,
                )

            if response.status_code != 200 or payload.get("status") != "success":
                error_msg = payload.get("error") or f"HTTP {response.status_code}"
                raise PrometheusError(error_msg, status_code=response.status_code)

            return payload.get("data") or {}

        raise PrometheusError(f"Max retries exceeded: {last_error}")

    async def query_range(
        self,
        query: str,
        start: datetime,
        end: datetime,
        step: str,
    ) -> list[dict[str, Any]]:
        """Evaluate a range query.

        Returns:
            Matrix series: ``[{"metric": {...}, "values": [[ts, "v"], ...]}]``
        """
        data = await self._request(
            "/api/v1/query_range",
            {
                "query": query,
                "start": int(start.timestamp()),
                "end": int(end.timestamp()),
                "step": step,
            },
        )
        return data.get("result", [])

    async def query_instant(self, query: str) -> list[dict[str, Any]]:
        """Evaluate an instant query.

        Returns:
            Vector samples: ``[{"metric": {...}, "value": [ts, "v"]}]``
        """
        data = await self._request("/api/v1/query", {"query": query})
        result = data.get("result", [])
        # Scalar results come back as a bare [ts, "v"] pair
        if data.get("resultType") == "scalar" and result:
            return [{"metric": {}, "value": result}]
        return result
