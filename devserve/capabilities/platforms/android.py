"""Android emulator/device launcher (``adb``)."""
from __future__ import annotations

import logging

from devserve.capabilities.platforms.base import CommandError, DeviceLauncher, run_command

logger = logging.getLogger(__name__)


def _adb(device: str | None, *args: str) -> list[str]:
    cmd = ["adb"]
    if device:
        cmd += ["-s", device]
    return [*cmd, *args]


class AndroidEmulatorLauncher(DeviceLauncher):
    platform = "android"

    async def open_url(self, url: str, device: str | None) -> None:
        cmd = _adb(
            device, "shell", "am", "start",
            "-a", "android.intent.action.VIEW",
            "-d", url,
        )
        code, out, err = await run_command(cmd)
        # `am start` exits 0 even when no activity handles the intent.
        if code != 0 or "Error:" in out:
            raise CommandError(cmd, code, err or out)

    async def is_app_installed(self, application_id: str, device: str | None) -> bool:
        code, out, _ = await run_command(
            _adb(device, "shell", "pm", "list", "packages", application_id)
        )
        installed = code == 0 and f"package:{application_id}" in out.split()
        logger.debug("%s installed on device: %s", application_id, installed)
        return installed
