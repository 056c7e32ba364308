import httpx
import pytest

from tgkit.handlers import CallbackQueryHandler, CommandHandler, EventHandler, split_command
from tgkit.updates import parse_update
from tests.factories import RecordingLogger, api_error, callback_update, make_client, message_update, ok


def _client(requests: list[httpx.Request] | None = None, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if status != 200:
            return httpx.Response(status, json=api_error(status, "Bad Request: query is too old"))
        return httpx.Response(200, json=ok())

    return make_client(handler)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("/start", ("start", "")),
        ("/Start@demo_bot  hello world ", ("start", "hello world")),
        ("  /help me", ("help", "me")),
        ("start", None),
        ("/", None),
        ("/@bot", None),
    ],
)
def test_split_command(text: str, expected) -> None:
    assert split_command(text) == expected


def test_command_handler_passes_args() -> None:
    seen: list[tuple[int, str]] = []
    handler = CommandHandler().command("/Echo", lambda update, client, args: seen.append((update.update_id, args)))

    assert handler.handle(parse_update(message_update(1, "/echo hi there")), _client())
    assert not handler.handle(parse_update(message_update(2, "/other")), _client())
    assert not handler.handle(parse_update(message_update(3, "echo")), _client())
    assert seen == [(1, "hi there")]
    assert handler.commands == ("echo",)


def test_command_handler_propagates_action_errors() -> None:
    def boom(update, client, args):
        raise RuntimeError("broken")

    handler = CommandHandler().command("start", boom)
    with pytest.raises(RuntimeError):
        handler.handle(parse_update(message_update(1, "/start")), _client())


def test_callback_handler_answers_query() -> None:
    requests: list[httpx.Request] = []
    seen: list[str] = []
    handler = CallbackQueryHandler().callback(" approve ", lambda update, client: seen.append(update.callback_data))

    assert handler.handle(parse_update(callback_update(1, "approve", query_id="q-1")), _client(requests))
    assert seen == ["approve"]
    assert requests[0].url.path.endswith("/answerCallbackQuery")
    assert b"callback_query_id=q-1" in requests[0].content


def test_callback_handler_ignores_unknown_data() -> None:
    requests: list[httpx.Request] = []
    handler = CallbackQueryHandler().callback("a", lambda update, client: None)
    assert not handler.handle(parse_update(callback_update(1, "b")), _client(requests))
    assert not handler.handle(parse_update(message_update(2, "a")), _client(requests))
    assert requests == []


def test_failed_answer_is_logged_not_raised() -> None:
    log = RecordingLogger()
    handler = CallbackQueryHandler(logger=log).callback("a", lambda update, client: None)
    client = _client(status=400)

    assert handler.handle(parse_update(callback_update(1, "a")), client)
    assert "handlers.callback.answer_failed" in log.events("warning")


def test_event_handler_matches_events_and_conditions() -> None:
    seen: list[tuple[str, bool]] = []
    handler = (
        EventHandler(admin_ids=[7])
        .on("private", lambda update, client, is_admin: seen.append(("private", is_admin)))
        .on("photo", lambda update, client, is_admin: seen.append(("photo", is_admin)))
        .on("text", lambda update, client, is_admin: seen.append(("hello", is_admin)), text="hello")
    )
    client = _client()

    assert handler.handle(parse_update(message_update(1, "hello")), client)
    assert seen == [("private", True), ("hello", True)]

    seen.clear()
    photo = message_update(2, chat_id=8, chat_type="group", photo=[{"file_id": "x"}])
    assert handler.handle(parse_update(photo), client)
    assert seen == [("photo", False)]


def test_private_event_skips_commands() -> None:
    seen: list[str] = []
    handler = EventHandler().on("private", lambda update, client, is_admin: seen.append("x"))
    assert not handler.handle(parse_update(message_update(1, "/start")), _client())
    assert seen == []


def test_event_handler_requires_message_and_known_event() -> None:
    handler = EventHandler().on("message", lambda update, client, is_admin: None)
    assert not handler.handle(parse_update(callback_update(1, "x")), _client())
    with pytest.raises(ValueError):
        EventHandler().on("dance", lambda update, client, is_admin: None)
