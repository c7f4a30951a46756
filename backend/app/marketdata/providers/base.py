"""Shared HTTP plumbing for the vendor REST clients."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import ConfigurationError, DataUnavailableError, TransportError
from ..interface import QuoteProvider

logger = logging.getLogger(__name__)


def to_float(value: Any) -> float | None:
    """Vendors send numbers as strings, empty strings or null."""
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> int | None:
    number = to_float(value)
    return int(number) if number is not None else None


class VendorClient(QuoteProvider):
    """Base for REST clients that pass the API key as a query parameter.

    A single ``httpx.AsyncClient`` is created lazily and reused; callers may
    inject their own (tests, shared connection pools).
    """

    base_url: str = ""
    api_key_param: str = "apikey"
    key_env_name: str = ""

    def __init__(
        self,
        api_key: str | None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _require_key(self, symbol: str | None = None) -> None:
        if not self._api_key:
            raise ConfigurationError(
                f"{self.provider_id.value} API key not configured ({self.key_env_name})",
                symbol=symbol,
                context={"provider": self.provider_id.value},
            )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client for connection reuse."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
            self._owns_client = True
        return self._client

    async def _get_json(self, path: str, params: dict[str, Any], *, symbol: str | None = None) -> Any:
        """GET ``base_url + path`` and decode JSON, mapping failures to typed errors."""
        self._require_key(symbol)
        url = f"{self.base_url}{path}"
        query = {**params, self.api_key_param: self._api_key}
        context = {"provider": self.provider_id.value, "path": path}
        try:
            response = await self._get_client().get(url, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"{self.provider_id.value} {path} returned HTTP {status}",
                symbol=symbol,
                context={**context, "status_code": status},
            ) from e
        except httpx.RequestError as e:
            raise TransportError(
                f"{self.provider_id.value} {path} request failed: {e}",
                symbol=symbol,
                context=context,
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise DataUnavailableError(
                f"{self.provider_id.value} {path} returned invalid JSON",
                symbol=symbol,
                context=context,
            ) from e

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
