from __future__ import annotations

import enum
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .errors import PollingAbortedError, TgkitError, ValidationError
from .model import ApiResult
from .updates import Update, parse_update

if TYPE_CHECKING:
    from .ingestion import UpdateIngestor


class PollState(enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISPATCHING = "dispatching"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class Poller:
    """Long-polling loop over ``getUpdates`` feeding an ingestor.

    Sleeps wait on a ``threading.Event`` so ``stop()`` from another thread
    ends the loop without waiting out the current delay.
    """

    def __init__(
        self,
        ingestor: UpdateIngestor,
        *,
        clock: Callable[[], float] = time.monotonic,
        stop_event: threading.Event | None = None,
    ) -> None:
        self._ingestor = ingestor
        self._config = ingestor.config
        self._log = ingestor.logger
        self._clock = clock
        self._stop = stop_event or threading.Event()
        self._state = PollState.IDLE
        self._offset: int | None = None
        self._idle_delay = self._config.idle_delay_min
        self._failures = 0
        self._last_error: TgkitError | None = None
        self._last_fetch_at: float | None = None

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def offset(self) -> int | None:
        return self._offset

    @property
    def idle_delay(self) -> float:
        return self._idle_delay

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def last_fetch_at(self) -> float | None:
        return self._last_fetch_at

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def _wait(self, seconds: float) -> None:
        if seconds > 0:
            self._stop.wait(seconds)

    def _long_poll_timeout(self) -> int:
        # Leave room under the HTTP timeout so long polls do not time out client-side.
        ceiling = max(0, int(self._ingestor.client.config.timeout) - 1)
        return min(self._config.poll_timeout, ceiling)

    def fetch(self) -> list[Any]:
        """Request the next raw ``getUpdates`` batch; entries are parsed one by one."""
        result = self._ingestor.client.get_updates(
            self._offset,
            timeout=self._long_poll_timeout(),
            limit=self._config.poll_limit,
            allowed_updates=self._config.allowed_updates,
        )
        if not isinstance(result, ApiResult):
            raise ValidationError("getUpdates did not return an API result.")
        batch = result.unwrap()
        if not isinstance(batch, list):
            raise ValidationError("getUpdates result must be a list.")
        return batch

    def _parse(self, item: Any) -> tuple[int | None, Update | None]:
        try:
            update = parse_update(item)
        except ValidationError as exc:
            update_id = item.get("update_id") if isinstance(item, dict) else None
            if isinstance(update_id, bool) or not isinstance(update_id, int):
                update_id = None
            self._log.warning("polling.bad_update", update_id=update_id, error=str(exc))
            return update_id, None
        return update.update_id, update

    def _dispatch(self, update: Update) -> None:
        try:
            self._ingestor.dispatch(update)
        except Exception as exc:  # noqa: BLE001
            self._log.error(
                "polling.dispatch_failed",
                update_id=update.update_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )

    def backoff_delay(self, failures: int) -> float:
        return min(
            self._config.failure_delay * (2 ** max(0, failures - 1)),
            self._config.failure_delay_max,
        )

    def poll_once(self) -> int:
        """Run one fetch/dispatch cycle and return how many updates it dispatched."""
        self._state = PollState.FETCHING
        try:
            batch = self.fetch()
        except TgkitError as exc:
            self._on_failure(exc)
            return 0
        finally:
            self._last_fetch_at = self._clock()
        self._failures = 0
        if not batch:
            self._state = PollState.IDLE
            self._wait(self._idle_delay)
            self._idle_delay = min(
                self._idle_delay + self._config.idle_delay_step,
                self._config.idle_delay_max,
            )
            return 0
        self._state = PollState.DISPATCHING
        dispatched = 0
        for item in batch:
            update_id, update = self._parse(item)
            if update_id is not None:
                self._offset = update_id + 1
            if update is not None:
                self._dispatch(update)
                dispatched += 1
            if self._stop.is_set():
                break
        self._idle_delay = self._config.idle_delay_min
        self._state = PollState.IDLE
        return dispatched

    def _on_failure(self, exc: TgkitError) -> None:
        self._failures += 1
        self._last_error = exc
        self._log.error(
            "polling.fetch_failed",
            failures=self._failures,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        if self._failures >= self._config.max_consecutive_failures:
            self._state = PollState.STOPPED
            self._log.critical(
                "polling.aborted", failures=self._failures, error=str(exc)
            )
            raise PollingAbortedError(self._failures, exc) from exc
        self._state = PollState.BACKOFF
        self._wait(self.backoff_delay(self._failures))

    def run(self) -> None:
        self._log.info("polling.started", offset=self._offset)
        try:
            while not self._stop.is_set():
                self.poll_once()
        finally:
            self._state = PollState.STOPPED
            self._log.info("polling.stopped", offset=self._offset)
