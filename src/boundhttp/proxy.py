from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from boundhttp import config as boundhttp_config

from .utils import is_blank

_PROXY_SCHEMES = ("http", "https")


def _parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() == "true"


@dataclass(frozen=True)
class ProxySettings:
    """Proxy configuration handed to an ``HttpClient``.

    Ports are kept as given; ``resolve_proxy`` validates them and treats any
    malformed value as "no proxy".
    """

    enabled: bool = False
    http_host: str | None = None
    http_port: int | str | None = None
    https_host: str | None = None
    https_port: int | str | None = None

    @classmethod
    def from_mapping(cls, section: Mapping) -> ProxySettings:
        return cls(
            enabled=_parse_flag(section.get("enabled", False)),
            http_host=section.get("http_host") or None,
            http_port=section.get("http_port") or None,
            https_host=section.get("https_host") or None,
            https_port=section.get("https_port") or None,
        )

    @classmethod
    def from_config(cls) -> ProxySettings:
        return cls.from_mapping(boundhttp_config.get_section("proxy"))

    def host_for(self, scheme: str) -> str | None:
        return self.http_host if scheme == "http" else self.https_host

    def port_for(self, scheme: str) -> int | str | None:
        return self.http_port if scheme == "http" else self.https_port


def _parse_port(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if port <= 0 or port > 65535:
        return None
    return port


def resolve_proxy(scheme: str | None, settings: ProxySettings) -> tuple[str, int] | None:
    """Returns the ``(host, port)`` proxy for ``scheme`` or ``None``.

    Never raises: disabled proxying, unsupported schemes, blank hosts and bad
    ports all resolve to no proxy.
    """
    if not settings.enabled or not scheme:
        return None

    scheme = scheme.lower()
    if scheme not in _PROXY_SCHEMES:
        return None

    host = settings.host_for(scheme)
    if not isinstance(host, str) or is_blank(host):
        return None

    port = _parse_port(settings.port_for(scheme))
    if port is None:
        return None

    return host.strip(), port
