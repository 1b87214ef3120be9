"""URL construction for dev server clients.

A :class:`UrlCreator` is bound to one dev server session (port, location
defaults, tunnel accessor) and builds three URL shapes:

* ``<scheme>://<host>:<port>`` for the server itself or the native runtime
* ``http://<host>:<port>/_expo/loading[?platform=...]`` for the interstitial page
* ``<app-scheme>://expo-development-client/?url=<encoded>`` for dev clients

It holds no runtime state beyond its constructor arguments.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable
from urllib.parse import quote, urlencode, urlparse

from devserve.core.errors import TunnelNotStarted
from devserve.core.network import LOOPBACK_ADDRESS, get_ip_address

logger = logging.getLogger(__name__)

LOADING_PAGE_PATH = "_expo/loading"

# Schemes that can never identify a development client.
_RESERVED_SCHEMES = {"http", "https", "exp", "exps"}


@dataclass(frozen=True)
class CreateUrlOptions:
    scheme: str | None = None
    host_type: str | None = None
    hostname: str | None = None

    def merged(self, **overrides: str | None) -> CreateUrlOptions:
        """Return a copy with the non-None *overrides* applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


@dataclass(frozen=True)
class UrlComponents:
    protocol: str | None
    hostname: str
    port: str | None


class UrlCreator:
    def __init__(
        self,
        defaults: CreateUrlOptions | None,
        port: int,
        get_tunnel_url: Callable[[], str | None] | None = None,
        *,
        proxy_url: str | None = None,
        hostname_override: str | None = None,
    ) -> None:
        self.defaults = defaults or CreateUrlOptions()
        self.port = port
        self._get_tunnel_url = get_tunnel_url
        self._proxy_url = proxy_url
        self._hostname_override = hostname_override

    def construct_url(
        self,
        scheme: str | None = None,
        host_type: str | None = None,
        hostname: str | None = None,
    ) -> str:
        """Build ``<scheme>://<host>[:<port>]`` from defaults plus overrides."""
        options = self.defaults.merged(
            scheme=scheme, host_type=host_type, hostname=hostname
        )
        url = _join_url_components(self._get_url_components(options))
        logger.debug("URL: %s", url)
        return url

    def construct_loading_url(
        self,
        platform: str | None = None,
        host_type: str | None = None,
        hostname: str | None = None,
    ) -> str:
        """Build the interstitial page URL, optionally tagged with *platform*."""
        base = self.construct_url(scheme="http", host_type=host_type, hostname=hostname)
        url = f"{base}/{LOADING_PAGE_PATH}"
        if platform:
            url += "?" + urlencode({"platform": platform})
        return url

    def construct_dev_client_url(
        self,
        scheme: str | None = None,
        host_type: str | None = None,
        hostname: str | None = None,
    ) -> str | None:
        """Build a development client deep link.

        Returns None when no usable custom scheme is configured.
        """
        protocol = scheme or self.defaults.scheme
        if not protocol or protocol.lower() in _RESERVED_SCHEMES:
            return None

        effective_host_type = host_type or self.defaults.host_type
        manifest_url = self.construct_url(
            scheme="https" if effective_host_type == "tunnel" else "http",
            host_type=host_type,
            hostname=hostname,
        )
        return f"{protocol}://expo-development-client/?url={quote(manifest_url, safe='')}"

    # ------------------------------------------------------------------

    def _get_url_components(self, options: CreateUrlOptions) -> UrlComponents:
        if self._proxy_url:
            return _components_from_public_url(options, self._proxy_url)

        hostname = options.hostname
        if options.host_type == "tunnel":
            tunnel_url = self._get_tunnel_url() if self._get_tunnel_url else None
            if not tunnel_url:
                raise TunnelNotStarted()
            return _components_from_public_url(options, tunnel_url)
        if options.host_type == "localhost" and not hostname:
            hostname = "localhost"

        return UrlComponents(
            protocol=options.scheme or "http",
            hostname=self._default_hostname(hostname),
            port=str(self.port),
        )

    def _default_hostname(self, hostname: str | None) -> str:
        if self._hostname_override:
            return self._hostname_override
        # "localhost" may resolve to ::1 on devices; always hand out IPv4.
        if hostname == "localhost":
            return LOOPBACK_ADDRESS
        return hostname or get_ip_address()


def _components_from_public_url(options: CreateUrlOptions, url: str) -> UrlComponents:
    """Address a proxy or tunnel URL, upgrading the scheme if it is HTTPS."""
    parsed = urlparse(url)
    protocol = options.scheme or "http"
    if parsed.scheme == "https":
        if protocol == "http":
            protocol = "https"
        elif protocol == "exp":
            protocol = "exps"
    return UrlComponents(
        protocol=protocol,
        hostname=parsed.hostname or "",
        port=str(parsed.port) if parsed.port else None,
    )


def _join_url_components(components: UrlComponents) -> str:
    if not components.hostname:
        raise ValueError("hostname cannot be inferred")
    url = f"{components.protocol}://" if components.protocol else ""
    url += components.hostname
    if components.port:
        url += f":{components.port}"
    return url
