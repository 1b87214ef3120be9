"""Tests for platform launchers (device tools are mocked)."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devserve.capabilities.platforms.android import AndroidEmulatorLauncher
from devserve.capabilities.platforms.apple import AppleSimulatorLauncher
from devserve.capabilities.platforms.base import (
    LaunchDescriptor,
    LauncherContext,
    LaunchOptions,
    LaunchResult,
    PlatformLauncher,
    PlatformRuntime,
)
from devserve.capabilities.platforms.registry import PLATFORM_LAUNCHERS
from devserve.core.errors import LaunchFailed


def _context(custom_url: str | None = "my-app://expo-development-client/?url=x") -> LauncherContext:
    return LauncherContext(
        get_dev_server_url=MagicMock(return_value="http://localhost:3000"),
        get_expo_go_url=MagicMock(side_effect=lambda installed: (
            "http://h:3000/_expo/loading" if installed else "exp://h:3000"
        )),
        get_custom_runtime_url=MagicMock(return_value=custom_url),
    )


class TestRegistry:
    def test_lookup_table(self):
        assert PLATFORM_LAUNCHERS[PlatformRuntime.SIMULATOR] is AppleSimulatorLauncher
        assert PLATFORM_LAUNCHERS[PlatformRuntime.EMULATOR] is AndroidEmulatorLauncher
        assert PlatformRuntime.DESKTOP not in PLATFORM_LAUNCHERS

    @pytest.mark.parametrize("cls", [AppleSimulatorLauncher, AndroidEmulatorLauncher])
    def test_protocol_conformance(self, cls):
        assert isinstance(cls(_context()), PlatformLauncher)


class TestAppleSimulatorLauncher:
    async def test_opens_expo_go_url(self):
        context = _context()
        launcher = AppleSimulatorLauncher(context)
        with patch(
            "devserve.capabilities.platforms.apple.run_command",
            new=AsyncMock(return_value=(0, "", "")),
        ) as mock_run:
            result = await launcher.open(LaunchDescriptor(runtime="expo"), LaunchOptions())

        assert result == LaunchResult(url="exp://h:3000")
        # No application id, so the install state is unknown rather than False.
        context.get_expo_go_url.assert_called_once_with(None)
        mock_run.assert_awaited_once_with(
            ["xcrun", "simctl", "openurl", "booted", "exp://h:3000"]
        )

    async def test_installed_dev_build_gets_loading_page(self):
        context = _context()
        launcher = AppleSimulatorLauncher(context)
        with patch(
            "devserve.capabilities.platforms.apple.run_command",
            new=AsyncMock(return_value=(0, "/path/to/App.app", "")),
        ) as mock_run:
            result = await launcher.open(
                LaunchDescriptor(runtime="expo"),
                LaunchOptions(device="ABC-123", application_id="com.example.app"),
            )

        assert result.url == "http://h:3000/_expo/loading"
        context.get_expo_go_url.assert_called_once_with(True)
        assert mock_run.await_args_list[0].args[0] == [
            "xcrun", "simctl", "get_app_container", "ABC-123", "com.example.app",
        ]

    async def test_custom_runtime(self):
        context = _context()
        launcher = AppleSimulatorLauncher(context)
        with patch(
            "devserve.capabilities.platforms.apple.run_command",
            new=AsyncMock(return_value=(0, "", "")),
        ):
            result = await launcher.open(
                LaunchDescriptor(runtime="custom"), LaunchOptions(scheme="other"),
            )
        assert result.url == "my-app://expo-development-client/?url=x"
        context.get_custom_runtime_url.assert_called_once_with(scheme="other")

    async def test_custom_runtime_falls_back_to_server_url(self):
        launcher = AppleSimulatorLauncher(_context(custom_url=None))
        with patch(
            "devserve.capabilities.platforms.apple.run_command",
            new=AsyncMock(return_value=(0, "", "")),
        ):
            result = await launcher.open(LaunchDescriptor(runtime="custom"), LaunchOptions())
        assert result.url == "http://localhost:3000"

    async def test_failure_is_launch_failed(self):
        launcher = AppleSimulatorLauncher(_context())
        with patch(
            "devserve.capabilities.platforms.apple.run_command",
            new=AsyncMock(return_value=(149, "", "No devices are booted.")),
        ):
            with pytest.raises(LaunchFailed, match="No devices are booted"):
                await launcher.open(LaunchDescriptor(runtime="expo"), LaunchOptions())


class TestAndroidEmulatorLauncher:
    async def test_opens_url_with_intent(self):
        launcher = AndroidEmulatorLauncher(_context())
        with patch(
            "devserve.capabilities.platforms.android.run_command",
            new=AsyncMock(return_value=(0, "Starting: Intent { ... }", "")),
        ) as mock_run:
            result = await launcher.open(
                LaunchDescriptor(runtime="expo"), LaunchOptions(device="emulator-5554"),
            )

        assert result.url == "exp://h:3000"
        mock_run.assert_awaited_once_with([
            "adb", "-s", "emulator-5554", "shell", "am", "start",
            "-a", "android.intent.action.VIEW", "-d", "exp://h:3000",
        ])

    async def test_unhandled_intent_is_failure(self):
        launcher = AndroidEmulatorLauncher(_context())
        with patch(
            "devserve.capabilities.platforms.android.run_command",
            new=AsyncMock(return_value=(0, "Error: Activity not started, unable to resolve Intent", "")),
        ):
            with pytest.raises(LaunchFailed) as exc_info:
                await launcher.open(LaunchDescriptor(runtime="expo"), LaunchOptions())
        assert exc_info.value.platform == "android"

    async def test_package_installed_check(self):
        launcher = AndroidEmulatorLauncher(_context())
        with patch(
            "devserve.capabilities.platforms.android.run_command",
            new=AsyncMock(return_value=(0, "package:com.example.app\npackage:com.example.app.test\n", "")),
        ):
            assert await launcher.is_app_installed("com.example.app", None) is True
            assert await launcher.is_app_installed("com.example", None) is False

    async def test_missing_adb_is_launch_failed(self):
        launcher = AndroidEmulatorLauncher(_context())
        with patch(
            "devserve.capabilities.platforms.android.run_command",
            new=AsyncMock(side_effect=FileNotFoundError("adb")),
        ):
            with pytest.raises(LaunchFailed) as exc_info:
                await launcher.open(LaunchDescriptor(runtime="expo"), LaunchOptions())
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
