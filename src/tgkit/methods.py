from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from .errors import ValidationError

if TYPE_CHECKING:
    from .model import ApiResult

_SECRET_TOKEN_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"
)


def validate_webhook_url(url: str) -> str:
    parts = urlsplit(url) if isinstance(url, str) else None
    if parts is None or parts.scheme != "https" or not parts.netloc:
        raise ValidationError("Webhook URL must be an https URL.", parameter="url")
    return url


def validate_secret_token(secret: str) -> str:
    if not 1 <= len(secret) <= 256 or not set(secret) <= _SECRET_TOKEN_CHARS:
        raise ValidationError(
            "Secret token must be 1-256 characters of A-Z, a-z, 0-9, _ and -.",
            parameter="secret_token",
        )
    return secret


class BotMethods:
    """Typed shortcuts for the handful of endpoints the library itself relies on.

    Every wrapper goes through ``call`` so middleware, retries and the error
    handler apply exactly as they would for a raw call.
    """

    def call(self, method: str, params: Mapping[str, Any] | None = None) -> Any:
        raise NotImplementedError

    def get_me(self) -> ApiResult:
        return self.call("getMe")

    def get_updates(
        self,
        offset: int | None = None,
        *,
        timeout: int | None = None,
        limit: int | None = None,
        allowed_updates: Iterable[str] | None = None,
    ) -> ApiResult:
        return self.call(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout,
                "limit": limit,
                "allowed_updates": (
                    list(allowed_updates) if allowed_updates is not None else None
                ),
            },
        )

    def send_message(self, chat_id: int | str, text: str, **extra: Any) -> ApiResult:
        return self.call("sendMessage", {"chat_id": chat_id, "text": text, **extra})

    def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool | None = None,
    ) -> ApiResult:
        return self.call(
            "answerCallbackQuery",
            {
                "callback_query_id": callback_query_id,
                "text": text,
                "show_alert": show_alert,
            },
        )

    def set_webhook(
        self,
        url: str,
        *,
        secret_token: str | None = None,
        allowed_updates: Iterable[str] | None = None,
        max_connections: int | None = None,
        drop_pending_updates: bool | None = None,
    ) -> ApiResult:
        validate_webhook_url(url)
        if secret_token is not None:
            validate_secret_token(secret_token)
        if max_connections is not None and not 1 <= max_connections <= 100:
            raise ValidationError(
                "max_connections must be between 1 and 100.",
                parameter="max_connections",
            )
        return self.call(
            "setWebhook",
            {
                "url": url,
                "secret_token": secret_token,
                "allowed_updates": (
                    list(allowed_updates) if allowed_updates is not None else None
                ),
                "max_connections": max_connections,
                "drop_pending_updates": drop_pending_updates,
            },
        )

    def delete_webhook(self, *, drop_pending_updates: bool | None = None) -> ApiResult:
        return self.call(
            "deleteWebhook", {"drop_pending_updates": drop_pending_updates}
        )

    def get_webhook_info(self) -> ApiResult:
        return self.call("getWebhookInfo")
