"""iOS Simulator launcher (``xcrun simctl``)."""
from __future__ import annotations

import logging

from devserve.capabilities.platforms.base import CommandError, DeviceLauncher, run_command

logger = logging.getLogger(__name__)


class AppleSimulatorLauncher(DeviceLauncher):
    platform = "ios"

    async def open_url(self, url: str, device: str | None) -> None:
        cmd = ["xcrun", "simctl", "openurl", device or "booted", url]
        code, _, err = await run_command(cmd)
        if code != 0:
            raise CommandError(cmd, code, err)

    async def is_app_installed(self, application_id: str, device: str | None) -> bool:
        code, _, _ = await run_command(
            ["xcrun", "simctl", "get_app_container", device or "booted", application_id]
        )
        logger.debug("%s installed on simulator: %s", application_id, code == 0)
        return code == 0
