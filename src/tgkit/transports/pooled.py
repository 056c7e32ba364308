from __future__ import annotations

import httpx

from ..config import RequestConfiguration
from ..logging import Logger, get_logger
from .base import (
    TransportRequest,
    TransportResponse,
    default_headers,
    network_error,
    open_uploads,
    request_kwargs,
    to_response,
)
from .proxy import resolve_proxy

logger = get_logger(__name__)


class PooledTransport:
    """Connection-pooled transport with blocking and non-blocking sends.

    Clients passed in by the caller are used as-is and never closed here.
    """

    supports_async = True

    def __init__(
        self,
        config: RequestConfiguration,
        *,
        http_client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
        log: Logger | None = None,
    ) -> None:
        self._config = config
        self._log = log or logger
        self._proxy = resolve_proxy(config, log=self._log)
        self._client = http_client
        self._async_client = async_client
        self._owns_client = http_client is None
        self._owns_async_client = async_client is None

    def _client_options(self) -> dict:
        keepalive = self._config.max_concurrent_requests if self._config.keep_alive else 0
        return {
            "timeout": self._config.timeout,
            "verify": self._config.verify_ssl,
            "headers": default_headers(self._config),
            "proxy": self._proxy.to_httpx() if self._proxy is not None else None,
            "limits": httpx.Limits(
                max_connections=self._config.max_concurrent_requests,
                max_keepalive_connections=keepalive,
            ),
        }

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(**self._client_options())
        return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(**self._client_options())
        return self._async_client

    def send(self, request: TransportRequest) -> TransportResponse:
        with open_uploads(request.params.files) as uploads:
            try:
                resp = self.client.request(
                    request.http_method,
                    request.url,
                    **request_kwargs(request, uploads),
                )
            except httpx.HTTPError as e:
                raise network_error(request.http_method, request.url, e) from e
        return to_response(resp)

    async def send_async(self, request: TransportRequest) -> TransportResponse:
        with open_uploads(request.params.files) as uploads:
            try:
                resp = await self.async_client.request(
                    request.http_method,
                    request.url,
                    **request_kwargs(request, uploads),
                )
            except httpx.HTTPError as e:
                raise network_error(request.http_method, request.url, e) from e
        return to_response(resp)

    def _close_sync_client(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def close(self) -> None:
        """Close the blocking pool; the async pool needs ``aclose``."""
        self._close_sync_client()
        if self._owns_async_client and self._async_client is not None:
            self._log.warning("transport.async_client_open", hint="use aclose()")

    async def aclose(self) -> None:
        self._close_sync_client()
        if self._owns_async_client and self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None
