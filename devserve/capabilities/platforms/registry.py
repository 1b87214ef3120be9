"""Launcher lookup by platform runtime."""
from __future__ import annotations

from typing import Callable

from devserve.capabilities.platforms.android import AndroidEmulatorLauncher
from devserve.capabilities.platforms.apple import AppleSimulatorLauncher
from devserve.capabilities.platforms.base import (
    LauncherContext,
    PlatformLauncher,
    PlatformRuntime,
)

LauncherFactory = Callable[[LauncherContext], PlatformLauncher]

PLATFORM_LAUNCHERS: dict[PlatformRuntime, LauncherFactory] = {
    PlatformRuntime.SIMULATOR: AppleSimulatorLauncher,
    PlatformRuntime.EMULATOR: AndroidEmulatorLauncher,
}
