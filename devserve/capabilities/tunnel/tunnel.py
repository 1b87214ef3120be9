"""Session-scoped public tunnel for a bound dev server."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from devserve.capabilities.tunnel.base import TunnelProviderProtocol
from devserve.capabilities.tunnel.cloudflared import CloudflaredTunnelProvider
from devserve.core.errors import TunnelStartFailed

logger = logging.getLogger(__name__)


class AsyncTunnel:
    """Starts a tunnel provider for one port with a timeout and retries.

    The provider is created fresh on every attempt so a half-started
    process from a failed attempt is never reused.
    """

    def __init__(
        self,
        port: int,
        provider_factory: Callable[[], TunnelProviderProtocol] = CloudflaredTunnelProvider,
        timeout: float = 30.0,
        retries: int = 2,
    ) -> None:
        self.port = port
        self._provider_factory = provider_factory
        self._timeout = timeout
        self._retries = max(retries, 0)
        self._provider: TunnelProviderProtocol | None = None

    @property
    def public_url(self) -> str | None:
        if self._provider is None:
            return None
        return self._provider.public_url

    @property
    def is_alive(self) -> bool:
        return self._provider is not None and self._provider.is_alive

    async def start(self) -> str:
        """Start the tunnel. Returns the public URL.

        Raises TunnelStartFailed once every attempt has failed or timed out.
        """
        if self._provider is not None and self._provider.public_url:
            return self._provider.public_url

        last_error: BaseException | None = None
        for attempt in range(1, self._retries + 2):
            provider = self._provider_factory()
            try:
                url = await asyncio.wait_for(provider.start(self.port), self._timeout)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    "Tunnel attempt %d timed out after %.0fs", attempt, self._timeout
                )
                await provider.stop()
                continue
            except (RuntimeError, OSError) as e:
                last_error = e
                logger.warning("Tunnel attempt %d failed: %s", attempt, e)
                await provider.stop()
                continue

            self._provider = provider
            logger.info("Tunnel ready (%s): %s", provider.provider_name, url)
            return url

        raise TunnelStartFailed(
            f"Failed to start tunnel for port {self.port}: {last_error or 'timed out'}"
        ) from last_error

    async def stop(self) -> None:
        """Stop the tunnel. No-op if it was never started."""
        provider, self._provider = self._provider, None
        if provider is None:
            return
        await provider.stop()
        logger.info("Tunnel stopped")
