from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

from .errors import ConfigError

# Environment variable names for secrets
ENV_BOT_TOKEN = "TGKIT_BOT_TOKEN"
ENV_WEBHOOK_SECRET = "TGKIT_WEBHOOK_SECRET"

LOCAL_CONFIG_NAME = Path(".tgkit") / "tgkit.toml"
HOME_CONFIG_PATH = Path.home() / ".tgkit" / "tgkit.toml"

DEFAULT_BASE_URL = "https://api.telegram.org"
DEFAULT_MAX_MEMORY_USAGE = 512 * 1024 * 1024

TransportKind = Literal["pooled", "simple"]
BackoffKind = Literal["constant", "exponential"]
UpdateMode = Literal["webhook", "polling"]

_TRANSPORTS = ("pooled", "simple")
_BACKOFFS = ("constant", "exponential")
_MODES = ("webhook", "polling")


def _require_positive(name: str, value: float, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Invalid `{name}`; expected a number.")
    if value < 0 or (value == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ConfigError(f"Invalid `{name}`; expected a {bound} number.")


def _require_int(name: str, value: int, *, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"Invalid `{name}`; expected an integer >= {minimum}.")


@dataclass(frozen=True, slots=True)
class RequestConfiguration:
    transport: TransportKind = "pooled"
    timeout: float = 10.0
    retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: BackoffKind = "constant"
    retry_delay_max: float = 30.0
    keep_alive: bool = True
    max_concurrent_requests: int = 50
    http_proxy: str | None = None
    socks5_proxy: str | None = None
    verify_ssl: bool = True
    max_memory_usage: int | None = DEFAULT_MAX_MEMORY_USAGE
    base_url: str = DEFAULT_BASE_URL
    upload_local_paths: bool = True

    def __post_init__(self) -> None:
        if self.transport not in _TRANSPORTS:
            raise ConfigError(
                f"Invalid `transport` {self.transport!r}; expected one of: "
                + ", ".join(_TRANSPORTS)
            )
        if self.retry_backoff not in _BACKOFFS:
            raise ConfigError(
                f"Invalid `retry_backoff` {self.retry_backoff!r}; expected one of: "
                + ", ".join(_BACKOFFS)
            )
        _require_positive("timeout", self.timeout)
        _require_int("retries", self.retries, minimum=0)
        _require_positive("retry_delay", self.retry_delay, allow_zero=True)
        _require_positive("retry_delay_max", self.retry_delay_max, allow_zero=True)
        _require_int("max_concurrent_requests", self.max_concurrent_requests, minimum=1)
        if self.max_memory_usage is not None:
            _require_int("max_memory_usage", self.max_memory_usage, minimum=1)
        if not self.base_url.startswith(("https://", "http://")):
            raise ConfigError("Invalid `base_url`; expected an http(s) URL.")


@dataclass(frozen=True, slots=True)
class IngestionConfiguration:
    mode: UpdateMode = "polling"
    min_update_interval: float = 0.1
    max_concurrent_updates: int = 50
    processed_ttl: float = 3600.0
    secret_token: str | None = None
    restrict_ips: bool = False
    poll_timeout: int = 30
    poll_limit: int = 100
    allowed_updates: tuple[str, ...] | None = None
    idle_delay_min: float = 0.1
    idle_delay_step: float = 0.1
    idle_delay_max: float = 1.0
    failure_delay: float = 1.0
    failure_delay_max: float = 30.0
    max_consecutive_failures: int = 5

    def __post_init__(self) -> None:
        if self.mode not in _MODES:
            raise ConfigError(
                f"Invalid `mode` {self.mode!r}; expected one of: " + ", ".join(_MODES)
            )
        _require_positive("min_update_interval", self.min_update_interval, allow_zero=True)
        _require_int("max_concurrent_updates", self.max_concurrent_updates, minimum=1)
        _require_positive("processed_ttl", self.processed_ttl)
        _require_int("poll_timeout", self.poll_timeout, minimum=0)
        _require_int("poll_limit", self.poll_limit, minimum=1)
        if self.poll_limit > 100:
            raise ConfigError("Invalid `poll_limit`; expected at most 100.")
        _require_positive("idle_delay_min", self.idle_delay_min, allow_zero=True)
        _require_positive("idle_delay_step", self.idle_delay_step, allow_zero=True)
        _require_positive("idle_delay_max", self.idle_delay_max, allow_zero=True)
        if self.idle_delay_max < self.idle_delay_min:
            raise ConfigError("`idle_delay_max` must not be below `idle_delay_min`.")
        _require_positive("failure_delay", self.failure_delay, allow_zero=True)
        _require_positive("failure_delay_max", self.failure_delay_max, allow_zero=True)
        _require_int("max_consecutive_failures", self.max_consecutive_failures, minimum=1)


@dataclass(frozen=True, slots=True)
class BotConfig:
    token: str
    request: RequestConfiguration = field(default_factory=RequestConfiguration)
    ingestion: IngestionConfiguration = field(default_factory=IngestionConfiguration)
    log_file: str | None = None
    debug: bool = False


def _section(config: dict[str, Any], name: str, config_path: Path) -> dict[str, Any]:
    value = config.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid `[{name}]` in {config_path}; expected a table.")
    return value


def _build(cls: type, data: dict[str, Any], section: str, config_path: Path):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"Unknown option(s) in `[{section}]` of {config_path}: " + ", ".join(unknown)
        )
    if "allowed_updates" in data and data["allowed_updates"] is not None:
        data = {**data, "allowed_updates": tuple(data["allowed_updates"])}
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigError(f"Invalid `[{section}]` in {config_path}: {e}") from e


def _read_config(cfg_path: Path) -> dict:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def load_config_file(path: str | Path | None = None) -> tuple[dict, Path]:
    if path:
        cfg_path = Path(path).expanduser()
        return _read_config(cfg_path), cfg_path

    for candidate in _config_candidates():
        if candidate.is_file():
            return _read_config(candidate), candidate
    raise ConfigError("Missing tgkit config.")


def get_bot_token(config: dict, config_path: Path) -> str:
    """Get bot token from environment variable or config file.

    Environment variable TGKIT_BOT_TOKEN takes precedence over config file.
    """
    env_token = os.environ.get(ENV_BOT_TOKEN)
    if env_token and env_token.strip():
        return env_token.strip()

    try:
        token = config["bot_token"]
    except KeyError:
        raise ConfigError(
            f"Missing bot token. Set {ENV_BOT_TOKEN} environment variable "
            f"or add `bot_token` to {config_path}."
        ) from None

    if not isinstance(token, str) or not token.strip():
        raise ConfigError(
            f"Invalid `bot_token` in {config_path}; expected a non-empty string."
        )
    return token.strip()


def parse_config(config: dict, config_path: Path) -> BotConfig:
    token = get_bot_token(config, config_path)
    request = _build(
        RequestConfiguration, _section(config, "request", config_path), "request", config_path
    )
    ingestion_data = dict(_section(config, "updates", config_path))
    env_secret = os.environ.get(ENV_WEBHOOK_SECRET)
    if env_secret and env_secret.strip():
        ingestion_data["secret_token"] = env_secret.strip()
    ingestion = _build(IngestionConfiguration, ingestion_data, "updates", config_path)

    log_file = config.get("log_file")
    if log_file is not None and not isinstance(log_file, str):
        raise ConfigError(f"Invalid `log_file` in {config_path}; expected a string.")
    debug = config.get("debug", False)
    if not isinstance(debug, bool):
        raise ConfigError(f"Invalid `debug` in {config_path}; expected a boolean.")
    return BotConfig(
        token=token,
        request=request,
        ingestion=ingestion,
        log_file=log_file,
        debug=debug,
    )


def load_config(path: str | Path | None = None) -> BotConfig:
    config, config_path = load_config_file(path)
    return parse_config(config, config_path)
