"""Shared types for tunnel capability."""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TunnelProviderProtocol(Protocol):
    """Exposes a local port on a public URL."""

    @property
    def public_url(self) -> str | None: ...

    @property
    def is_alive(self) -> bool: ...

    @property
    def provider_name(self) -> str: ...

    async def start(self, port: int) -> str: ...

    async def stop(self) -> None: ...
