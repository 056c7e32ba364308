"""Webhook surface for the update ingestor.

``process_webhook`` holds the request checks and does not depend on any web
framework; ``create_webhook_app`` mounts it as a Starlette application.
"""

from __future__ import annotations

import ipaddress
import secrets
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
import anyio.to_thread
import msgspec
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .errors import ValidationError
from .updates import parse_update

if TYPE_CHECKING:
    from .ingestion import UpdateIngestor

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

TELEGRAM_NETWORKS = (
    ipaddress.ip_network("149.154.160.0/20"),
    ipaddress.ip_network("91.108.4.0/22"),
)

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass(frozen=True, slots=True)
class WebhookRequest:
    method: str
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    remote_addr: str | None = None

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True, slots=True)
class WebhookResponse:
    status_code: int
    body: dict[str, Any]

    @property
    def content(self) -> bytes:
        return msgspec.json.encode(self.body)


def _error(status_code: int, message: str) -> WebhookResponse:
    return WebhookResponse(status_code, {"ok": False, "error": message})


def is_trusted_address(
    address: str | None,
    networks: Iterable[ipaddress.IPv4Network | ipaddress.IPv6Network] = TELEGRAM_NETWORKS,
) -> bool:
    if not address:
        return False
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in networks)


def secret_matches(expected: str, received: str | None) -> bool:
    if received is None:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def process_webhook(ingestor: UpdateIngestor, request: WebhookRequest) -> WebhookResponse:
    config = ingestor.config
    log = ingestor.logger
    if request.method.upper() != "POST":
        return _error(405, "Method not allowed")
    if config.restrict_ips and not is_trusted_address(request.remote_addr):
        log.warning("webhook.forbidden_address", remote_addr=request.remote_addr)
        return _error(403, "Forbidden")
    if config.secret_token and not secret_matches(
        config.secret_token, request.header(SECRET_HEADER)
    ):
        log.warning("webhook.bad_secret", remote_addr=request.remote_addr)
        return _error(403, "Forbidden")
    if not request.body.strip():
        return _error(400, "Empty request body")
    try:
        update = parse_update(request.body)
    except ValidationError as exc:
        log.warning("webhook.bad_payload", error=str(exc))
        return _error(400, "Invalid update payload")
    try:
        ingestor.dispatch(update)
    except Exception as exc:  # noqa: BLE001
        log.error(
            "webhook.failed",
            update_id=update.update_id,
            error=str(exc),
            error_type=exc.__class__.__name__,
            exc_info=True,
        )
        return _error(500, "Internal error")
    return WebhookResponse(200, {"ok": True})


def create_webhook_app(ingestor: UpdateIngestor, *, path: str = "/webhook") -> Starlette:
    """ASGI app that feeds ``path`` into ``ingestor`` on worker threads."""
    if ingestor.mode != "webhook":
        raise ValidationError("create_webhook_app needs a webhook-mode ingestor.", parameter="mode")
    limiter = anyio.CapacityLimiter(ingestor.config.max_concurrent_updates)

    async def endpoint(request: Request) -> Response:
        webhook_request = WebhookRequest(
            method=request.method,
            body=await request.body(),
            headers=dict(request.headers),
            remote_addr=request.client.host if request.client else None,
        )
        result = await anyio.to_thread.run_sync(
            ingestor.handle_webhook, webhook_request, limiter=limiter
        )
        return Response(
            result.content,
            status_code=result.status_code,
            media_type="application/json",
        )

    return Starlette(routes=[Route(path, endpoint, methods=_ALL_METHODS)])
