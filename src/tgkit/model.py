"""Core value types shared by the dispatch engine and its middleware."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any

import msgspec

from .errors import RemoteApiError, ValidationError
from .retry import DEFAULT_RATE_LIMIT_WAIT, retry_after_from_payload

METHOD_RE = re.compile(r"^[A-Za-z]+$")

RATE_LIMIT_ERROR_CODE = 429


class CallMode(enum.Enum):
    SYNC = "sync"
    ASYNC = "async"


def validate_method(method: str) -> str:
    if not isinstance(method, str) or not METHOD_RE.fullmatch(method):
        raise ValidationError(
            f"Invalid Telegram API method provided: {method!r}", parameter="method"
        )
    return method


@dataclass(frozen=True, slots=True)
class OutgoingCall:
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_method(self.method)

    def replace(self, **params: Any) -> OutgoingCall:
        return OutgoingCall(self.method, {**self.params, **params})


class ApiResult(msgspec.Struct, frozen=True, forbid_unknown_fields=False):
    ok: bool
    result: Any = None
    description: str | None = None
    error_code: int | None = None
    parameters: dict[str, Any] | None = None

    @property
    def is_rate_limited(self) -> bool:
        return not self.ok and self.error_code == RATE_LIMIT_ERROR_CODE

    @property
    def retry_after(self) -> float:
        payload: dict[str, Any] = {"description": self.description}
        if self.parameters is not None:
            payload["parameters"] = self.parameters
        retry_after = retry_after_from_payload(payload)
        return DEFAULT_RATE_LIMIT_WAIT if retry_after is None else retry_after

    def to_error(self) -> RemoteApiError:
        return RemoteApiError(
            self.description or "Unknown error",
            self.error_code or 0,
            parameters=self.parameters,
        )

    def unwrap(self) -> Any:
        if not self.ok:
            raise self.to_error()
        return self.result


def decode_api_result(content: bytes, *, status_code: int) -> ApiResult:
    try:
        payload = msgspec.json.decode(content)
    except msgspec.DecodeError:
        return ApiResult(
            ok=False, description="Invalid JSON response", error_code=status_code
        )
    if not isinstance(payload, dict) or "ok" not in payload:
        return ApiResult(
            ok=False, description="Invalid response payload", error_code=status_code
        )
    try:
        return msgspec.convert(payload, type=ApiResult)
    except msgspec.ValidationError as e:
        return ApiResult(
            ok=False,
            description=f"Invalid response payload: {e}",
            error_code=status_code,
        )
