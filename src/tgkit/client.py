from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import anyio
import msgspec

from .config import RequestConfiguration
from .credentials import Credential
from .errors import NetworkError, RemoteApiError, TgkitError, ValidationError
from .logging import Logger, get_logger
from .memory import MemoryGuard
from .methods import BotMethods
from .middleware import Middleware, build_async_chain, build_chain
from .model import ApiResult, CallMode, OutgoingCall, decode_api_result, validate_method
from .params import normalize_params
from .retry import RetryPolicy
from .transports import Transport, TransportRequest, build_transport

_RETRYABLE = (NetworkError, RemoteApiError)


def _call_mode(mode: CallMode | str) -> CallMode:
    try:
        return CallMode(mode)
    except ValueError:
        raise ValidationError(
            f"Invalid call mode {mode!r}; expected one of: "
            + ", ".join(m.value for m in CallMode),
            parameter="mode",
        ) from None


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Handed to the error handler once a call has used up its attempts."""

    method: str
    params: Mapping[str, Any]
    error: TgkitError
    attempts: int


ErrorHandler = Callable[[ErrorContext], Any]


@dataclass(frozen=True, slots=True)
class _Step:
    action: str
    delay: float = 0.0
    result: ApiResult | None = None
    error: TgkitError | None = None


@dataclass(slots=True)
class _RetryState:
    policy: RetryPolicy
    failures: int = 0
    rate_limit_used: bool = False
    last_error: TgkitError | None = None

    def after_result(self, result: ApiResult) -> _Step:
        if result.ok:
            return _Step("done", result=result)
        if result.is_rate_limited and not self.rate_limit_used:
            self.rate_limit_used = True
            return _Step("resubmit", delay=result.retry_after, error=result.to_error())
        return self.after_error(result.to_error())

    def after_error(self, error: TgkitError) -> _Step:
        self.failures += 1
        self.last_error = error
        if self.failures > self.policy.retries:
            return _Step("give_up", error=error)
        return _Step("retry", delay=self.policy.delay(self.failures), error=error)


class BotClient(BotMethods):
    """Request dispatch engine: every Bot API call goes through ``call``."""

    def __init__(
        self,
        token: str | Credential,
        config: RequestConfiguration | None = None,
        *,
        transport: Transport | None = None,
        logger: Logger | None = None,
        retry_policy: RetryPolicy | None = None,
        error_handler: ErrorHandler | None = None,
        memory_guard: MemoryGuard | None = None,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._credential = token if isinstance(token, Credential) else Credential(token)
        self._config = config or RequestConfiguration()
        self._log: Logger = logger if logger is not None else get_logger(__name__)
        self._retry = retry_policy or RetryPolicy.from_config(self._config)
        self._error_handler = error_handler
        self._memory = memory_guard or MemoryGuard(self._config.max_memory_usage)
        self._sleep = sleep
        self._async_sleep = async_sleep
        self._middleware: list[Middleware] = []
        self._base = f"{self._config.base_url.rstrip('/')}/bot{self._credential.token}"
        self._memory.check()
        self._transport = transport or build_transport(self._config, log=self._log)

    @property
    def config(self) -> RequestConfiguration:
        return self._config

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def logger(self) -> Logger:
        return self._log

    @property
    def supports_async(self) -> bool:
        return self._transport.supports_async

    def add_middleware(self, middleware: Middleware) -> BotClient:
        if not isinstance(middleware, Middleware):
            raise ValidationError("Middleware must subclass tgkit.middleware.Middleware.")
        self._middleware.append(middleware)
        return self

    def set_error_handler(self, handler: ErrorHandler | None) -> BotClient:
        self._error_handler = handler
        return self

    def method_url(self, method: str) -> str:
        return f"{self._base}/{method}"

    def call(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        mode: CallMode | str = CallMode.SYNC,
    ) -> Any:
        """Invoke ``method``; async mode returns an awaitable instead of blocking."""
        if _call_mode(mode) is CallMode.ASYNC:
            return self.call_async(method, params)
        outgoing = self._prepare(method, params)
        return self._dispatch(outgoing)

    def call_async(
        self, method: str, params: Mapping[str, Any] | None = None
    ) -> Awaitable[ApiResult]:
        if not self._transport.supports_async:
            raise ValidationError("Asynchronous requests require the pooled transport.")
        outgoing = self._prepare(method, params)
        return self._dispatch_async(outgoing)

    def _prepare(self, method: str, params: Mapping[str, Any] | None) -> OutgoingCall:
        self._check_memory()
        validate_method(method)
        outgoing = OutgoingCall(method, dict(params or {}))
        normalize_params(outgoing.params, upload_local_paths=self._config.upload_local_paths)
        return outgoing

    def _check_memory(self) -> None:
        try:
            self._memory.check()
        except TgkitError as exc:
            self._log.critical("dispatch.memory_limit", error=str(exc))
            raise

    def _request_for(self, outgoing: OutgoingCall) -> TransportRequest:
        prepared = normalize_params(
            outgoing.params, upload_local_paths=self._config.upload_local_paths
        )
        return TransportRequest(url=self.method_url(outgoing.method), params=prepared)

    def _send(self, outgoing: OutgoingCall) -> ApiResult:
        response = self._transport.send(self._request_for(outgoing))
        return decode_api_result(response.content, status_code=response.status_code)

    async def _send_async(self, outgoing: OutgoingCall) -> ApiResult:
        response = await self._transport.send_async(self._request_for(outgoing))
        return decode_api_result(response.content, status_code=response.status_code)

    def _dispatch(self, outgoing: OutgoingCall) -> Any:
        chain = build_chain(self._middleware, self._send)
        state = _RetryState(self._retry)
        while True:
            try:
                step = state.after_result(chain(outgoing))
            except _RETRYABLE as exc:
                step = state.after_error(exc)
            if step.action == "done":
                self._log.debug("dispatch.ok", method=outgoing.method)
                return step.result
            self._log_step(outgoing.method, state, step)
            if step.action == "give_up":
                return self._give_up(outgoing.method, outgoing.params, state)
            self._sleep(step.delay)

    async def _dispatch_async(self, outgoing: OutgoingCall) -> Any:
        chain = build_async_chain(self._middleware, self._send_async)
        state = _RetryState(self._retry)
        while True:
            try:
                step = state.after_result(await chain(outgoing))
            except _RETRYABLE as exc:
                step = state.after_error(exc)
            if step.action == "done":
                self._log.debug("dispatch.ok", method=outgoing.method)
                return step.result
            self._log_step(outgoing.method, state, step)
            if step.action == "give_up":
                result = self._give_up(outgoing.method, outgoing.params, state)
                if inspect.isawaitable(result):
                    result = await result
                return result
            await self._async_sleep(step.delay)

    def _log_step(self, method: str, state: _RetryState, step: _Step) -> None:
        error = step.error
        if step.action == "resubmit":
            self._log.warning(
                "dispatch.rate_limited",
                method=method,
                retry_after=step.delay,
            )
            return
        self._log.error(
            "dispatch.attempt_failed",
            method=method,
            attempt=state.failures,
            error=str(error),
            error_type=error.__class__.__name__ if error is not None else None,
        )

    def _give_up(
        self, method: str, params: Mapping[str, Any], state: _RetryState
    ) -> Any:
        error = state.last_error
        if error is None:
            raise TgkitError(f"{method} was abandoned before any attempt failed.")
        if self._error_handler is not None:
            return self._error_handler(
                ErrorContext(
                    method=method,
                    params=params,
                    error=error,
                    attempts=state.failures,
                )
            )
        raise error

    def custom_request(
        self,
        url: str,
        http_method: str = "POST",
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request to an arbitrary URL with the client's retry policy.

        Returns decoded JSON when the body parses, otherwise the body text.
        """
        self._check_memory()
        parts = urlsplit(url) if isinstance(url, str) else None
        if parts is None or parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValidationError("Invalid URL provided for custom request.", parameter="url")
        verb = http_method.upper()
        if verb not in ("GET", "POST"):
            raise ValidationError(
                f"Unsupported HTTP method {http_method!r}.", parameter="http_method"
            )
        request = TransportRequest(
            url=url,
            params=normalize_params(
                params, upload_local_paths=self._config.upload_local_paths
            ),
            http_method=verb,  # type: ignore[arg-type]
        )
        state = _RetryState(self._retry)
        while True:
            try:
                response = self._transport.send(request)
            except NetworkError as exc:
                step = state.after_error(exc)
                self._log_step(url, state, step)
                if step.action == "give_up":
                    return self._give_up(url, dict(params or {}), state)
                self._sleep(step.delay)
                continue
            try:
                return msgspec.json.decode(response.content)
            except msgspec.DecodeError:
                return response.text

    def close(self) -> None:
        self._transport.close()

    async def aclose(self) -> None:
        await self._transport.aclose()

    def __enter__(self) -> BotClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> BotClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
