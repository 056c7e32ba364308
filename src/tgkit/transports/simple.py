from __future__ import annotations

import httpx

from ..config import RequestConfiguration
from ..errors import ValidationError
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


class SimpleTransport:
    """One blocking request per call over a throwaway connection.

    Nothing is shared between calls; every send builds and closes its own
    ``httpx.Client``.
    """

    supports_async = False

    def __init__(
        self,
        config: RequestConfiguration,
        *,
        transport: httpx.BaseTransport | None = None,
        log: Logger | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._proxy = resolve_proxy(config, log=log or logger)

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            headers=default_headers(self._config),
            proxy=self._proxy.to_httpx() if self._proxy is not None else None,
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
            transport=self._transport,
        )

    def send(self, request: TransportRequest) -> TransportResponse:
        with open_uploads(request.params.files) as uploads:
            try:
                with self._client() as client:
                    resp = client.request(
                        request.http_method,
                        request.url,
                        **request_kwargs(request, uploads),
                    )
            except httpx.HTTPError as e:
                raise network_error(request.http_method, request.url, e) from e
        return to_response(resp)

    async def send_async(self, request: TransportRequest) -> TransportResponse:
        raise ValidationError("Asynchronous requests require the pooled transport.")

    def close(self) -> None:
        return None

    async def aclose(self) -> None:
        return None
