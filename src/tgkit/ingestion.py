from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .config import IngestionConfiguration, UpdateMode
from .errors import ValidationError
from .handlers import HandlerRegistry, UpdateCallback, UpdateHandler
from .logging import Logger, get_logger
from .storage import MemoryUpdateStorage, UpdateStorage
from .updates import Update, parse_update

if TYPE_CHECKING:
    from .client import BotClient
    from .polling import Poller
    from .webhook import WebhookRequest, WebhookResponse


class UpdateIngestor:
    """Turns inbound updates into handler invocations.

    Both the webhook and the polling path end in ``dispatch``, which skips
    already processed ids, keeps handler starts at least
    ``min_update_interval`` apart and isolates handler failures per update.
    """

    def __init__(
        self,
        client: BotClient,
        mode: UpdateMode | None = None,
        storage: UpdateStorage | None = None,
        registry: HandlerRegistry | None = None,
        config: IngestionConfiguration | None = None,
        *,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        config = config or IngestionConfiguration()
        if mode is not None and mode != config.mode:
            config = replace(config, mode=mode)
        self._client = client
        self._config = config
        self._storage: UpdateStorage = storage if storage is not None else MemoryUpdateStorage()
        self._registry = registry or HandlerRegistry()
        self._log = logger if logger is not None else get_logger(__name__)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_dispatch: float | None = None

    @property
    def mode(self) -> UpdateMode:
        return self._config.mode

    @property
    def config(self) -> IngestionConfiguration:
        return self._config

    @property
    def client(self) -> BotClient:
        return self._client

    @property
    def storage(self) -> UpdateStorage:
        return self._storage

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def logger(self) -> Logger:
        return self._log

    def set_callback(self, callback: UpdateCallback | None) -> UpdateIngestor:
        self._registry.callback = callback
        return self

    def set_command_handler(self, handler: UpdateHandler | None) -> UpdateIngestor:
        self._registry.command = handler
        return self

    def set_callback_query_handler(self, handler: UpdateHandler | None) -> UpdateIngestor:
        self._registry.callback_query = handler
        return self

    def set_event_handler(self, handler: UpdateHandler | None) -> UpdateIngestor:
        self._registry.event = handler
        return self

    def dispatch(self, update: Update | dict[str, Any]) -> bool:
        """Run the handlers for one update; False if it was already processed."""
        if not isinstance(update, Update):
            update = parse_update(update)
        if not self._claim(update):
            self._log.debug("ingestion.duplicate", update_id=update.update_id)
            return False
        try:
            self._run_handlers(update)
        except Exception as exc:  # noqa: BLE001
            self._log.error(
                "ingestion.handler_failed",
                update_id=update.update_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
        return True

    def _claim(self, update: Update) -> bool:
        key = str(update.update_id)
        with self._lock:
            if self._storage.has(key):
                return False
            if self._last_dispatch is not None:
                wait = self._config.min_update_interval - (
                    self._clock() - self._last_dispatch
                )
                if wait > 0:
                    self._sleep(wait)
            self._storage.mark_as_processed(key, self._config.processed_ttl)
            self._last_dispatch = self._clock()
        return True

    def _run_handlers(self, update: Update) -> None:
        registry = self._registry
        handled = False
        if registry.callback is not None:
            registry.callback(update, self._client)
            handled = True
        if registry.callback_query is not None and update.callback_query is not None:
            handled = registry.callback_query.handle(update, self._client) or handled
        elif update.message is not None:
            command_handled = False
            if registry.command is not None and (update.text or "").lstrip().startswith("/"):
                command_handled = registry.command.handle(update, self._client)
            if not command_handled and registry.event is not None:
                command_handled = registry.event.handle(update, self._client)
            handled = command_handled or handled
        if not handled:
            self._log.warning(
                "ingestion.unhandled", update_id=update.update_id, kind=update.kind
            )

    def handle_webhook(self, request: WebhookRequest) -> WebhookResponse:
        from .webhook import process_webhook

        self._require_mode("webhook")
        return process_webhook(self, request)

    def poller(self) -> Poller:
        from .polling import Poller

        self._require_mode("polling")
        return Poller(self, clock=self._clock)

    def run_polling(self) -> None:
        self.poller().run()

    def _require_mode(self, mode: UpdateMode) -> None:
        if self._config.mode != mode:
            raise ValidationError(
                f"Ingestor runs in {self._config.mode} mode, not {mode}.",
                parameter="mode",
            )

