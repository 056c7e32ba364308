from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx

from ..config import RequestConfiguration
from ..errors import NetworkError
from ..params import PreparedParams, open_uploads

HttpMethod = Literal["GET", "POST"]


@dataclass(frozen=True, slots=True)
class TransportRequest:
    url: str
    params: PreparedParams = field(default_factory=PreparedParams)
    http_method: HttpMethod = "POST"


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    content: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Transport(Protocol):
    supports_async: bool

    def send(self, request: TransportRequest) -> TransportResponse: ...

    async def send_async(self, request: TransportRequest) -> TransportResponse: ...

    def close(self) -> None: ...

    async def aclose(self) -> None: ...


def default_headers(config: RequestConfiguration) -> dict[str, str]:
    return {"Connection": "keep-alive" if config.keep_alive else "close"}


def request_kwargs(
    request: TransportRequest, uploads: Mapping[str, Any]
) -> dict[str, Any]:
    params = request.params
    if request.http_method == "GET" and not params.is_multipart:
        return {"params": params.fields}
    if params.is_multipart:
        return {"data": params.fields, "files": dict(uploads)}
    return {"data": params.fields}


def to_response(resp: httpx.Response) -> TransportResponse:
    return TransportResponse(
        status_code=resp.status_code,
        content=resp.content,
        headers=dict(resp.headers),
    )


def network_error(method: str, url: str, exc: httpx.HTTPError) -> NetworkError:
    # The URL carries the bot token, so only the path tail is surfaced.
    tail = url.rsplit("/", 1)[-1]
    return NetworkError(f"{method} {tail} failed: {exc.__class__.__name__}: {exc}")


__all__ = [
    "HttpMethod",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "default_headers",
    "network_error",
    "open_uploads",
    "request_kwargs",
    "to_response",
]
