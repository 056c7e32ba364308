from __future__ import annotations

from typing import Any


class TgkitError(Exception):
    pass


class ConfigError(TgkitError):
    pass


class ValidationError(TgkitError):
    def __init__(self, message: str, *, parameter: str | None = None) -> None:
        super().__init__(message)
        self.parameter = parameter


class NetworkError(TgkitError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        raw_response: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.raw_response = raw_response


class RemoteApiError(TgkitError):
    def __init__(
        self,
        description: str,
        error_code: int = 0,
        *,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"[{error_code}] {description}")
        self.description = description
        self.error_code = error_code
        self.parameters = parameters or {}

    @property
    def is_rate_limited(self) -> bool:
        return self.error_code == 429

    @property
    def retry_after(self) -> float | None:
        value = self.parameters.get("retry_after")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


class MemoryLimitError(TgkitError):
    def __init__(self, usage: int, limit: int) -> None:
        super().__init__(
            f"Memory usage {usage} bytes exceeds the configured limit of {limit} bytes."
        )
        self.usage = usage
        self.limit = limit


class PollingAbortedError(TgkitError):
    def __init__(self, failures: int, last_error: BaseException | None) -> None:
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"Polling stopped after {failures} consecutive fetch failures{detail}"
        )
        self.failures = failures
        self.last_error = last_error
