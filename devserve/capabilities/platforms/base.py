"""Platform launchers: open a dev server URL inside a device runtime.

Each launcher resolves which URL to open from the descriptor it is given,
then hands it to the platform's device tool.  Launchers never decide how a
URL is built; the orchestrator passes its URL accessors in a
:class:`LauncherContext`.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal, Protocol, runtime_checkable

from devserve.core.errors import LaunchFailed

logger = logging.getLogger(__name__)


class PlatformRuntime(str, Enum):
    SIMULATOR = "simulator"
    EMULATOR = "emulator"
    DESKTOP = "desktop"


@dataclass(frozen=True)
class LaunchDescriptor:
    """Which client to target: Expo Go (``expo``) or a development build (``custom``)."""
    runtime: Literal["expo", "custom"]


@dataclass(frozen=True)
class LaunchOptions:
    device: str | None = None  # simulator UDID / adb serial; None = booted/default
    application_id: str | None = None  # bundle id / package name of a dev build
    scheme: str | None = None  # overrides the dev client scheme


@dataclass(frozen=True)
class LaunchResult:
    url: str


@dataclass
class LauncherContext:
    get_dev_server_url: Callable[[], str | None]
    get_expo_go_url: Callable[[bool | None], str]
    get_custom_runtime_url: Callable[..., str | None]


@runtime_checkable
class PlatformLauncher(Protocol):
    async def open(
        self, descriptor: LaunchDescriptor, options: LaunchOptions
    ) -> LaunchResult: ...


class CommandError(RuntimeError):
    def __init__(self, cmd: list[str], returncode: int, stderr: str) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"{' '.join(cmd)} exited with {returncode}: {stderr.strip() or 'no output'}"
        )


async def run_command(cmd: list[str], timeout: float = 60) -> tuple[int, str, str]:
    """Run *cmd*, returning ``(returncode, stdout, stderr)``."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return -1, "", "Timed out"
    return proc.returncode, out.decode(errors="replace"), err.decode(errors="replace")


class DeviceLauncher:
    """Template for launchers that shell out to a device tool."""

    platform = "device"

    def __init__(self, context: LauncherContext) -> None:
        self.context = context

    async def open(
        self, descriptor: LaunchDescriptor, options: LaunchOptions
    ) -> LaunchResult:
        try:
            url = await self._resolve_url(descriptor, options)
            logger.info("Opening %s on %s", url, self.platform)
            await self.open_url(url, options.device)
        except LaunchFailed:
            raise
        except Exception as e:
            raise LaunchFailed(self.platform, e) from e
        return LaunchResult(url=url)

    async def _resolve_url(
        self, descriptor: LaunchDescriptor, options: LaunchOptions
    ) -> str:
        if descriptor.runtime == "custom":
            url = self.context.get_custom_runtime_url(scheme=options.scheme)
            url = url or self.context.get_dev_server_url()
        else:
            installed: bool | None = None  # unknown without an application id
            if options.application_id:
                installed = await self.is_app_installed(
                    options.application_id, options.device
                )
            url = self.context.get_expo_go_url(installed)
        if not url:
            raise RuntimeError("No URL available for the dev server")
        return url

    async def open_url(self, url: str, device: str | None) -> None:
        raise NotImplementedError

    async def is_app_installed(self, application_id: str, device: str | None) -> bool:
        raise NotImplementedError
