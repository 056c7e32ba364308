from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote

import httpx

from ..config import RequestConfiguration
from ..logging import Logger, get_logger

logger = get_logger(__name__)

PROXY_RE = re.compile(r"^(http|socks5)://(?:[^:@/]+:[^@/]+@)?[^:@/]+:\d+$")
_CREDENTIALS_RE = re.compile(r"^(?P<scheme>http|socks5)://(?P<user>[^:@/]+):(?P<password>[^@/]+)@(?P<address>.+)$")


@dataclass(frozen=True, slots=True)
class ProxySettings:
    url: str
    username: str | None = None
    password: str | None = None

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.username is None or self.password is None:
            return None
        return (self.username, self.password)

    def to_httpx(self) -> httpx.Proxy:
        return httpx.Proxy(self.url, auth=self.auth)


def validate_proxy(proxy: str) -> bool:
    return PROXY_RE.fullmatch(proxy) is not None


def parse_proxy(proxy: str) -> ProxySettings:
    match = _CREDENTIALS_RE.match(proxy)
    if match is None:
        return ProxySettings(url=proxy)
    return ProxySettings(
        url=f"{match['scheme']}://{match['address']}",
        username=unquote(match["user"]),
        password=unquote(match["password"]),
    )


def resolve_proxy(
    config: RequestConfiguration, *, log: Logger | None = None
) -> ProxySettings | None:
    """Pick the proxy for a client: HTTP first, then SOCKS5.

    A proxy that fails validation is skipped and the client connects directly.
    """
    log = log or logger
    for option, value, scheme in (
        ("http_proxy", config.http_proxy, "http"),
        ("socks5_proxy", config.socks5_proxy, "socks5"),
    ):
        if not value:
            continue
        if not validate_proxy(value) or not value.startswith(f"{scheme}://"):
            log.warning("transport.proxy_invalid", option=option)
            continue
        return parse_proxy(value)
    return None
