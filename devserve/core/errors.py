"""Error types raised by the dev server core.

Precondition failures surface immediately; teardown failures are collected
into a single :class:`TeardownPartialFailure`.
"""
from __future__ import annotations


class DevServerError(RuntimeError):
    """Base class for dev server errors."""


class AlreadyRunning(DevServerError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"Dev server '{name}' is already running. Stop it before starting again."
        )


class NotRunning(DevServerError):
    def __init__(self, message: str = "Dev server instance not found") -> None:
        super().__init__(message)


class UnknownManifestType(DevServerError):
    def __init__(self, manifest_type: str) -> None:
        self.manifest_type = manifest_type
        super().__init__(f"Manifest middleware for type '{manifest_type}' not found")


class TunnelNotStarted(DevServerError):
    def __init__(self) -> None:
        super().__init__(
            "Tunnel URL not found (it might not be ready yet). "
            "Wait for the tunnel to start and try again."
        )


class TunnelStartFailed(DevServerError):
    """The tunnel provider could not produce a public URL."""


class LaunchFailed(DevServerError):
    """A platform launcher failed to open a URL. The cause is chained."""

    def __init__(self, platform: str, cause: BaseException) -> None:
        self.platform = platform
        self.cause = cause
        super().__init__(f"Failed to open on {platform}: {cause}")


class TeardownPartialFailure(DevServerError):
    """One or more resources failed to release during ``stop()``."""

    def __init__(self, errors: list[tuple[str, BaseException]]) -> None:
        self.errors = errors
        details = "; ".join(f"{name}: {err}" for name, err in errors)
        super().__init__(f"Failed to stop {len(errors)} resource(s): {details}")
