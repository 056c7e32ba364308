from __future__ import annotations

from typing import Any

import msgspec

from .errors import ValidationError

__all__ = ["MESSAGE_KINDS", "UPDATE_KINDS", "Update", "parse_update", "parse_updates"]

Payload = dict[str, Any]

UPDATE_KINDS = (
    "message",
    "edited_message",
    "channel_post",
    "edited_channel_post",
    "business_message",
    "inline_query",
    "chosen_inline_result",
    "callback_query",
    "shipping_query",
    "pre_checkout_query",
    "poll",
    "poll_answer",
    "my_chat_member",
    "chat_member",
    "chat_join_request",
    "message_reaction",
)

MESSAGE_KINDS = ("message", "edited_message", "channel_post", "edited_channel_post")

_MISSING = object()


class Update(msgspec.Struct, frozen=True, omit_defaults=True, forbid_unknown_fields=False):
    """One inbound update: an id plus whichever variant payload it carries."""

    update_id: int
    message: Payload | None = None
    edited_message: Payload | None = None
    channel_post: Payload | None = None
    edited_channel_post: Payload | None = None
    business_message: Payload | None = None
    inline_query: Payload | None = None
    chosen_inline_result: Payload | None = None
    callback_query: Payload | None = None
    shipping_query: Payload | None = None
    pre_checkout_query: Payload | None = None
    poll: Payload | None = None
    poll_answer: Payload | None = None
    my_chat_member: Payload | None = None
    chat_member: Payload | None = None
    chat_join_request: Payload | None = None
    message_reaction: Payload | None = None

    @property
    def kind(self) -> str | None:
        for name in UPDATE_KINDS:
            if getattr(self, name) is not None:
                return name
        return None

    @property
    def effective_message(self) -> Payload | None:
        for name in MESSAGE_KINDS:
            payload = getattr(self, name)
            if payload is not None:
                return payload
        return None

    @property
    def text(self) -> str | None:
        if self.message is None:
            return None
        text = self.message.get("text")
        return text if isinstance(text, str) else None

    @property
    def callback_data(self) -> str | None:
        if self.callback_query is None:
            return None
        data = self.callback_query.get("data")
        return data if isinstance(data, str) else None

    @property
    def chat_id(self) -> int | None:
        message = self.effective_message
        if message is None and self.callback_query is not None:
            message = self.callback_query.get("message")
        if not isinstance(message, dict):
            return None
        chat = message.get("chat")
        if not isinstance(chat, dict):
            return None
        chat_id = chat.get("id")
        return chat_id if isinstance(chat_id, int) else None

    @property
    def sender_id(self) -> int | None:
        for payload in (self.message, self.callback_query, self.edited_message):
            if payload is None:
                continue
            sender = payload.get("from")
            if isinstance(sender, dict) and isinstance(sender.get("id"), int):
                return sender["id"]
        return None

    def get_field(self, path: str, default: Any = None) -> Any:
        """Look up a dotted path such as ``"message.chat.id"``."""
        current: Any = self.to_dict()
        for part in path.split("."):
            if isinstance(current, dict):
                current = current.get(part, _MISSING)
            elif isinstance(current, list) and part.isdigit():
                index = int(part)
                current = current[index] if index < len(current) else _MISSING
            else:
                return default
            if current is _MISSING:
                return default
        return current

    def to_dict(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


def parse_update(payload: Any) -> Update:
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = msgspec.json.decode(payload)
        except msgspec.DecodeError as e:
            raise ValidationError(f"Malformed update JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("Update payload must be a JSON object.")
    update_id = payload.get("update_id")
    if isinstance(update_id, bool) or not isinstance(update_id, int):
        raise ValidationError("Update payload is missing a valid update_id.")
    try:
        return msgspec.convert(payload, type=Update)
    except msgspec.ValidationError as e:
        raise ValidationError(f"Invalid update payload: {e}") from e


def parse_updates(payload: Any) -> list[Update]:
    if not isinstance(payload, list):
        raise ValidationError("getUpdates result must be a list.")
    return [parse_update(item) for item in payload]
