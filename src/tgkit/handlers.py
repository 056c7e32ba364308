from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from .errors import TgkitError
from .logging import Logger, get_logger
from .updates import Update

if TYPE_CHECKING:
    from .client import BotClient

UpdateCallback = Callable[[Update, "BotClient"], Any]
CommandAction = Callable[[Update, "BotClient", str], Any]
CallbackAction = Callable[[Update, "BotClient"], Any]
EventAction = Callable[[Update, "BotClient", bool], Any]

COMMAND_PREFIX = "/"


class UpdateHandler(Protocol):
    def handle(self, update: Update, client: BotClient) -> bool: ...


def normalize_command(name: str) -> str:
    return name.strip().lstrip(COMMAND_PREFIX).lower()


def split_command(text: str) -> tuple[str, str] | None:
    """Split ``"/cmd@bot rest"`` into ``("cmd", "rest")``."""
    text = text.strip()
    if not text.startswith(COMMAND_PREFIX):
        return None
    head, _, args = text.partition(" ")
    name, _, _ = head[1:].partition("@")
    if not name:
        return None
    return name.lower(), args.strip()


class CommandHandler:
    def __init__(self, *, logger: Logger | None = None) -> None:
        self._commands: dict[str, CommandAction] = {}
        self._log = logger if logger is not None else get_logger(__name__)

    def command(self, name: str, action: CommandAction) -> CommandHandler:
        key = normalize_command(name)
        if not key:
            raise ValueError("Command name must not be empty.")
        self._commands[key] = action
        self._log.debug("handlers.command.registered", command=key)
        return self

    @property
    def commands(self) -> tuple[str, ...]:
        return tuple(self._commands)

    def handle(self, update: Update, client: BotClient) -> bool:
        text = update.text
        if text is None:
            return False
        parsed = split_command(text)
        if parsed is None:
            return False
        name, args = parsed
        action = self._commands.get(name)
        if action is None:
            return False
        self._log.info("handlers.command", command=name, update_id=update.update_id)
        action(update, client, args)
        return True


class CallbackQueryHandler:
    """Dispatches on exact callback data and answers the query afterwards."""

    def __init__(self, *, logger: Logger | None = None) -> None:
        self._callbacks: dict[str, CallbackAction] = {}
        self._log = logger if logger is not None else get_logger(__name__)

    def callback(self, data: str, action: CallbackAction) -> CallbackQueryHandler:
        self._callbacks[data.strip()] = action
        self._log.debug("handlers.callback.registered", callback_data=data.strip())
        return self

    def handle(self, update: Update, client: BotClient) -> bool:
        data = (update.callback_data or "").strip()
        if update.callback_query is None or not data:
            return False
        action = self._callbacks.get(data)
        if action is None:
            self._log.debug("handlers.callback.unmatched", callback_data=data)
            return False
        self._log.info(
            "handlers.callback", callback_data=data, update_id=update.update_id
        )
        action(update, client)
        self._answer(update, client)
        return True

    def _answer(self, update: Update, client: BotClient) -> None:
        query_id = update.get_field("callback_query.id")
        if query_id is None:
            return
        try:
            result = client.answer_callback_query(str(query_id))
        except TgkitError as exc:
            self._log.warning(
                "handlers.callback.answer_failed",
                update_id=update.update_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return
        if not getattr(result, "ok", True):
            self._log.warning(
                "handlers.callback.answer_failed",
                update_id=update.update_id,
                error=getattr(result, "description", None),
            )


def _chat_type(expected: str) -> Callable[[Update], bool]:
    return lambda update: update.get_field("message.chat.type") == expected


def _has(field: str) -> Callable[[Update], bool]:
    return lambda update: update.get_field(f"message.{field}") is not None


EVENT_PREDICATES: dict[str, Callable[[Update], bool]] = {
    "message": lambda update: update.message is not None,
    "text": _has("text"),
    "private": _chat_type("private"),
    "group": _chat_type("group"),
    "supergroup": _chat_type("supergroup"),
    "channel": _chat_type("channel"),
    "photo": _has("photo"),
    "video": _has("video"),
    "audio": _has("audio"),
    "voice": _has("voice"),
    "document": _has("document"),
    "animation": _has("animation"),
    "sticker": _has("sticker"),
    "location": _has("location"),
    "contact": _has("contact"),
    "poll": _has("poll"),
}


@dataclass(frozen=True, slots=True)
class _Event:
    action: EventAction
    conditions: Mapping[str, Any]


class EventHandler:
    """Catch-all handler for messages, keyed on event names.

    Every registered event whose predicate and extra conditions match runs.
    Actions receive ``is_admin`` based on the configured admin chat ids.
    """

    def __init__(
        self,
        admin_ids: Iterable[int] = (),
        *,
        logger: Logger | None = None,
    ) -> None:
        self._events: dict[str, _Event] = {}
        self._admin_ids = frozenset(admin_ids)
        self._log = logger if logger is not None else get_logger(__name__)

    def on(self, event: str, action: EventAction, **conditions: Any) -> EventHandler:
        if event not in EVENT_PREDICATES:
            raise ValueError(
                f"Unknown event {event!r}; expected one of: "
                + ", ".join(EVENT_PREDICATES)
            )
        self._events[event] = _Event(action, dict(conditions))
        self._log.debug("handlers.event.registered", event=event)
        return self

    def is_admin(self, update: Update) -> bool:
        chat_id = update.get_field("message.chat.id")
        return chat_id is not None and chat_id in self._admin_ids

    def _matches(self, name: str, event: _Event, update: Update) -> bool:
        if not EVENT_PREDICATES[name](update):
            return False
        return all(
            update.get_field(f"message.{field}") == value
            for field, value in event.conditions.items()
        )

    def handle(self, update: Update, client: BotClient) -> bool:
        if update.message is None:
            return False
        handled = False
        is_command = (update.text or "").startswith(COMMAND_PREFIX)
        for name, event in list(self._events.items()):
            if not self._matches(name, event, update):
                continue
            if name == "private" and is_command:
                self._log.debug("handlers.event.skip_command", update_id=update.update_id)
                continue
            self._log.info("handlers.event", event=name, update_id=update.update_id)
            event.action(update, client, self.is_admin(update))
            handled = True
        return handled


@dataclass(slots=True)
class HandlerRegistry:
    """The handlers consulted for each update; any of them may be absent."""

    callback: UpdateCallback | None = None
    command: UpdateHandler | None = None
    callback_query: UpdateHandler | None = None
    event: UpdateHandler | None = None
