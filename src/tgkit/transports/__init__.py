from __future__ import annotations

from ..config import RequestConfiguration
from ..logging import Logger
from .base import Transport, TransportRequest, TransportResponse
from .pooled import PooledTransport
from .proxy import ProxySettings, parse_proxy, resolve_proxy, validate_proxy
from .simple import SimpleTransport


def build_transport(config: RequestConfiguration, *, log: Logger | None = None) -> Transport:
    if config.transport == "simple":
        return SimpleTransport(config, log=log)
    return PooledTransport(config, log=log)


__all__ = [
    "PooledTransport",
    "ProxySettings",
    "SimpleTransport",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "build_transport",
    "parse_proxy",
    "resolve_proxy",
    "validate_proxy",
]
