import pytest

from tgkit.config import RequestConfiguration
from tgkit.errors import MemoryLimitError, RemoteApiError
from tgkit.memory import MemoryGuard, current_memory_usage
from tgkit.model import ApiResult, decode_api_result
from tgkit.retry import RetryPolicy, retry_after_from_description, retry_after_from_payload


def test_constant_policy() -> None:
    policy = RetryPolicy.from_config(RequestConfiguration(retries=2, retry_delay=0.5))
    assert policy.max_attempts == 3
    assert [policy.delay(n) for n in (1, 2, 3)] == [0.5, 0.5, 0.5]


def test_exponential_policy_is_capped() -> None:
    policy = RetryPolicy(retries=5, delay_s=1.0, backoff="exponential", max_delay_s=6.0)
    assert [policy.delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 6.0]


def test_retry_after_sources() -> None:
    assert retry_after_from_payload({"parameters": {"retry_after": 7}}) == 7.0
    assert retry_after_from_payload({"description": "Too Many Requests: retry after 12"}) == 12.0
    assert retry_after_from_payload({"parameters": {"retry_after": True}}) is None
    assert retry_after_from_description("nothing here") is None


def test_decode_api_result_edge_cases() -> None:
    assert decode_api_result(b'{"ok": true, "result": 1}', status_code=200) == ApiResult(
        ok=True, result=1
    )
    missing = decode_api_result(b'{"result": 1}', status_code=200)
    assert missing.ok is False
    assert missing.error_code == 200
    assert decode_api_result(b"[]", status_code=500).description == "Invalid response payload"


def test_unwrap_raises_remote_error() -> None:
    result = ApiResult(ok=False, description="Forbidden", error_code=403)
    with pytest.raises(RemoteApiError) as excinfo:
        result.unwrap()
    assert excinfo.value.error_code == 403


def test_memory_guard() -> None:
    MemoryGuard(None, measure=lambda: 10**12).check()
    MemoryGuard(100, measure=lambda: 100).check()
    with pytest.raises(MemoryLimitError) as excinfo:
        MemoryGuard(100, measure=lambda: 101).check()
    assert excinfo.value.usage == 101
    assert current_memory_usage() > 0
