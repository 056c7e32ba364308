import httpx
import msgspec
import pytest
from starlette.testclient import TestClient

from tgkit.config import IngestionConfiguration
from tgkit.errors import ValidationError
from tgkit.handlers import CommandHandler
from tgkit.ingestion import UpdateIngestor
from tgkit.webhook import SECRET_HEADER, WebhookRequest, create_webhook_app, is_trusted_address
from tests.factories import RecordingLogger, make_client, ok

START_BODY = b'{"update_id":42,"message":{"chat":{"id":7},"text":"/start"}}'


def _ingestor(**config) -> tuple[UpdateIngestor, list[int]]:
    seen: list[int] = []
    client = make_client(lambda request: httpx.Response(200, json=ok()))
    ingestor = UpdateIngestor(
        client,
        "webhook",
        config=IngestionConfiguration(mode="webhook", min_update_interval=0, **config),
        logger=RecordingLogger(),
    )
    ingestor.set_command_handler(
        CommandHandler().command("start", lambda update, c, args: seen.append(update.update_id))
    )
    return ingestor, seen


def test_start_command_scenario() -> None:
    ingestor, seen = _ingestor()
    response = ingestor.handle_webhook(WebhookRequest("POST", START_BODY))
    assert response.status_code == 200
    assert msgspec.json.decode(response.content) == {"ok": True}
    assert seen == [42]

    replay = ingestor.handle_webhook(WebhookRequest("POST", START_BODY))
    assert replay.status_code == 200
    assert seen == [42]


@pytest.mark.parametrize(
    ("request_", "status"),
    [
        (WebhookRequest("GET", START_BODY), 405),
        (WebhookRequest("POST", b""), 400),
        (WebhookRequest("POST", b"{broken"), 400),
        (WebhookRequest("POST", b'{"message": {}}'), 400),
    ],
)
def test_rejections(request_: WebhookRequest, status: int) -> None:
    ingestor, seen = _ingestor()
    response = ingestor.handle_webhook(request_)
    assert response.status_code == status
    assert msgspec.json.decode(response.content)["ok"] is False
    assert seen == []


def test_secret_token_is_required() -> None:
    ingestor, seen = _ingestor(secret_token="s3cret")
    assert ingestor.handle_webhook(WebhookRequest("POST", START_BODY)).status_code == 403
    wrong = WebhookRequest("POST", START_BODY, headers={SECRET_HEADER: "nope"})
    assert ingestor.handle_webhook(wrong).status_code == 403
    right = WebhookRequest(
        "POST", START_BODY, headers={SECRET_HEADER.lower(): "s3cret"}
    )
    assert ingestor.handle_webhook(right).status_code == 200
    assert seen == [42]


def test_ip_restriction() -> None:
    ingestor, seen = _ingestor(restrict_ips=True)
    outside = WebhookRequest("POST", START_BODY, remote_addr="8.8.8.8")
    assert ingestor.handle_webhook(outside).status_code == 403
    inside = WebhookRequest("POST", START_BODY, remote_addr="149.154.167.50")
    assert ingestor.handle_webhook(inside).status_code == 200
    assert seen == [42]


@pytest.mark.parametrize(
    ("address", "trusted"),
    [
        ("149.154.160.1", True),
        ("149.154.175.255", True),
        ("91.108.4.10", True),
        ("91.108.8.1", False),
        ("not-an-ip", False),
        (None, False),
    ],
)
def test_trusted_addresses(address, trusted: bool) -> None:
    assert is_trusted_address(address) is trusted


def test_dispatch_crash_returns_500() -> None:
    ingestor, _ = _ingestor()

    class BrokenStorage:
        def has(self, update_id: str) -> bool:
            raise RuntimeError("storage down")

        def mark_as_processed(self, update_id: str, ttl: float = 0) -> None:
            return None

    ingestor._storage = BrokenStorage()
    response = ingestor.handle_webhook(WebhookRequest("POST", START_BODY))
    assert response.status_code == 500
    assert msgspec.json.decode(response.content)["ok"] is False


def test_starlette_app() -> None:
    ingestor, seen = _ingestor()
    app = create_webhook_app(ingestor, path="/hook")
    with TestClient(app) as http:
        response = http.post("/hook", content=START_BODY)
        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert http.get("/hook").status_code == 405
        assert http.post("/hook", content=b"").status_code == 400
    assert seen == [42]


def test_app_requires_webhook_mode() -> None:
    client = make_client(lambda request: httpx.Response(200, json=ok()))
    with pytest.raises(ValidationError):
        create_webhook_app(UpdateIngestor(client, "polling"))
