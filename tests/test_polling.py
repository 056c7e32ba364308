import threading
from urllib.parse import parse_qs

import httpx
import pytest

from tgkit.config import IngestionConfiguration, RequestConfiguration
from tgkit.errors import PollingAbortedError
from tgkit.ingestion import UpdateIngestor
from tgkit.polling import Poller, PollState
from tests.factories import RecordingLogger, make_client, message_update, ok


class RecordingEvent(threading.Event):
    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        return self.is_set()


def _setup(handler, *, config: IngestionConfiguration | None = None, retries: int = 0):
    log = RecordingLogger()
    client = make_client(handler, config=RequestConfiguration(retries=retries))
    ingestor = UpdateIngestor(
        client,
        "polling",
        config=config or IngestionConfiguration(min_update_interval=0),
        logger=log,
    )
    event = RecordingEvent()
    return ingestor, Poller(ingestor, stop_event=event), event, log


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def test_offset_advances_past_last_update() -> None:
    requests: list[dict[str, str]] = []
    batches = [[message_update(5, "a"), message_update(6, "b"), message_update(7, "c")], []]
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(_form(request))
        return httpx.Response(200, json=ok(batches.pop(0) if batches else []))

    ingestor, poller, _, _ = _setup(handler)
    ingestor.set_callback(lambda update, client: seen.append(update.update_id))

    assert poller.poll_once() == 3
    assert poller.offset == 8
    assert poller.poll_once() == 0
    assert "offset" not in requests[0]
    assert requests[1]["offset"] == "8"
    assert requests[0]["timeout"] == "9"
    assert requests[0]["limit"] == "100"
    assert seen == [5, 6, 7]


def test_idle_delay_grows_and_resets() -> None:
    batches: list[list] = [[], [], [], [message_update(1, "x")], []]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=ok(batches.pop(0)))

    _, poller, event, _ = _setup(handler)
    for _ in range(5):
        poller.poll_once()

    assert event.waits == pytest.approx([0.1, 0.2, 0.3, 0.1])
    assert poller.idle_delay == pytest.approx(0.2)


def test_idle_delay_is_capped() -> None:
    _, poller, event, _ = _setup(lambda request: httpx.Response(200, json=ok([])))
    for _ in range(12):
        poller.poll_once()
    assert max(event.waits) == pytest.approx(1.0)
    assert event.waits[-1] == pytest.approx(1.0)


def test_consecutive_failures_abort_polling() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    config = IngestionConfiguration(
        min_update_interval=0, failure_delay=1.0, max_consecutive_failures=3
    )
    _, poller, event, log = _setup(handler, config=config)

    with pytest.raises(PollingAbortedError) as excinfo:
        poller.run()

    assert excinfo.value.failures == 3
    assert event.waits == [1.0, 2.0]
    assert poller.state is PollState.STOPPED
    assert log.events("critical") == ["polling.aborted"]


def test_successful_fetch_resets_failure_count() -> None:
    responses = [
        httpx.Response(500, json={"ok": False, "error_code": 500, "description": "x"}),
        httpx.Response(200, json=ok([message_update(1, "x")])),
    ]
    _, poller, event, _ = _setup(lambda request: responses.pop(0))

    poller.poll_once()
    assert poller.failures == 1
    assert poller.state is PollState.BACKOFF
    poller.poll_once()
    assert poller.failures == 0
    assert poller.state is PollState.IDLE


def test_stop_ends_run_loop() -> None:
    calls: list[int] = []
    holder: dict[str, Poller] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 2:
            holder["poller"].stop()
        return httpx.Response(200, json=ok([]))

    _, poller, _, log = _setup(handler)
    holder["poller"] = poller
    poller.run()

    assert len(calls) == 2
    assert poller.state is PollState.STOPPED
    assert log.events("info") == ["polling.started", "polling.stopped"]


def test_backoff_is_capped() -> None:
    config = IngestionConfiguration(failure_delay=1.0, failure_delay_max=5.0)
    _, poller, _, _ = _setup(lambda request: httpx.Response(200, json=ok([])), config=config)
    assert [poller.backoff_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_malformed_entry_is_skipped_and_offset_moves_past_it() -> None:
    requests: list[dict[str, str]] = []
    batches = [
        [
            message_update(5, "a"),
            {"update_id": 6, "message": "not-an-object"},
            message_update(7, "c"),
            "garbage",
        ],
        [],
    ]
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(_form(request))
        return httpx.Response(200, json=ok(batches.pop(0) if batches else []))

    ingestor, poller, _, log = _setup(handler)
    ingestor.set_callback(lambda update, client: seen.append(update.update_id))

    assert poller.poll_once() == 2
    assert poller.poll_once() == 0
    assert seen == [5, 7]
    assert poller.offset == 8
    assert requests[1]["offset"] == "8"
    assert poller.failures == 0
    bad = [kw for level, event, kw in log.records if event == "polling.bad_update"]
    assert [kw["update_id"] for kw in bad] == [6, None]


def test_malformed_last_entry_still_advances_offset() -> None:
    batch = [message_update(5, "a"), {"update_id": 9, "message": "not-an-object"}]
    _, poller, _, _ = _setup(lambda request: httpx.Response(200, json=ok(batch)))

    assert poller.poll_once() == 1
    assert poller.offset == 10


class FailingStorage:
    def has(self, update_id: str) -> bool:
        raise RuntimeError("storage down")

    def mark_as_processed(self, update_id: str, ttl: float) -> None:
        raise RuntimeError("storage down")


def test_dispatch_failure_is_logged_and_polling_continues() -> None:
    batches = [[message_update(1, "a"), message_update(2, "b")], []]
    log = RecordingLogger()
    client = make_client(lambda request: httpx.Response(200, json=ok(batches.pop(0))))
    ingestor = UpdateIngestor(
        client,
        "polling",
        storage=FailingStorage(),
        config=IngestionConfiguration(min_update_interval=0),
        logger=log,
    )
    poller = Poller(ingestor, stop_event=RecordingEvent())

    assert poller.poll_once() == 2
    assert poller.offset == 3
    assert poller.state is PollState.IDLE
    failed = [kw for level, event, kw in log.records if event == "polling.dispatch_failed"]
    assert [kw["update_id"] for kw in failed] == [1, 2]
    assert failed[0]["error_type"] == "RuntimeError"
    assert "polling.aborted" not in log.events()
    assert poller.poll_once() == 0
