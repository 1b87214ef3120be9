"""Dev server lifecycle: one bound server plus its tunnel, session and launchers.

A :class:`BundlerDevServer` is either Stopped (no instance) or Running (one
:class:`DevServerInstance`).  ``start()`` binds the server, builds a fresh
:class:`UrlCreator`, then starts the tunnel (for ``host_type="tunnel"``) and
the development session.  ``stop()`` releases the session, the tunnel and
the server in that order, attempting every release even when an earlier one
fails, and reports the failures together.

Subclasses implement :meth:`BundlerDevServer._start_server` to bind an actual
HTTP server (see ``devserve.adapters.metro.server``).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Protocol

from devserve.adapters.manifest.middleware import MANIFEST_MIDDLEWARES, ManifestMiddleware
from devserve.capabilities.platforms.base import (
    LaunchDescriptor,
    LauncherContext,
    LaunchOptions,
    LaunchResult,
    PlatformLauncher,
    PlatformRuntime,
)
from devserve.capabilities.platforms.browser import open_browser
from devserve.capabilities.platforms.registry import PLATFORM_LAUNCHERS, LauncherFactory
from devserve.capabilities.session.development_session import DevelopmentSession
from devserve.capabilities.tunnel.tunnel import AsyncTunnel
from devserve.config import DevServerConfig
from devserve.core.errors import (
    AlreadyRunning,
    LaunchFailed,
    NotRunning,
    TeardownPartialFailure,
    TunnelNotStarted,
    UnknownManifestType,
)
from devserve.core.events import (
    DevServerStartedEvent,
    DevServerStoppedEvent,
    EventBus,
    PlatformOpenedEvent,
    TunnelReadyEvent,
)
from devserve.core.url_creator import CreateUrlOptions, UrlCreator

logger = logging.getLogger(__name__)

# Platform query value for the loading page, keyed by runtime.
_LOADING_PAGE_PLATFORMS = {"simulator": "ios", "emulator": "android"}


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

class ServerHandle(Protocol):
    async def close(self) -> None: ...


class MessageSocket(Protocol):
    def broadcast(self, method: str, params: dict | None = None) -> None: ...


@dataclass(frozen=True)
class ServerLocation:
    url: str
    port: int
    protocol: str
    host: str


@dataclass(frozen=True)
class DevServerInstance:
    server: ServerHandle
    location: ServerLocation
    middleware: dict[str, Any]
    message_socket: MessageSocket


@dataclass
class LocationOptions:
    scheme: str | None = None
    host_type: str = "lan"  # "lan" | "tunnel" | "localhost"
    hostname: str | None = None


@dataclass
class BundlerStartOptions:
    port: int | None = None
    https: bool = False
    location: LocationOptions = field(default_factory=LocationOptions)
    mode: str = "development"
    minify: bool = False
    force_manifest_type: str | None = None


class Tunnel(Protocol):
    @property
    def public_url(self) -> str | None: ...

    async def start(self) -> str: ...

    async def stop(self) -> None: ...


class SessionReporter(Protocol):
    async def start(self, runtime: str = "native") -> None: ...

    async def stop(self) -> None: ...


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class BundlerDevServer:
    name = "bundler"

    def __init__(
        self,
        project_root: str | Path,
        config: DevServerConfig | None = None,
        is_dev_client: bool | None = None,
        *,
        event_bus: EventBus | None = None,
        launchers: Mapping[PlatformRuntime, LauncherFactory] | None = None,
        tunnel_factory: Callable[[int], Tunnel] | None = None,
        session_factory: Callable[[str | None], SessionReporter] | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config or DevServerConfig(project_root=self.project_root)
        self.is_dev_client = (
            self.config.is_dev_client if is_dev_client is None else is_dev_client
        )
        self._events = event_bus
        self._launcher_factories = dict(PLATFORM_LAUNCHERS if launchers is None else launchers)
        self._launchers: dict[PlatformRuntime, PlatformLauncher] = {}
        self._tunnel_factory = tunnel_factory or self._create_tunnel
        self._session_factory = session_factory or self._create_session

        self._instance: DevServerInstance | None = None
        self._url_creator: UrlCreator | None = None
        self._tunnel: Tunnel | None = None
        self._dev_session: SessionReporter | None = None
        self._host_type = "lan"

    # -- state ---------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._instance is not None

    def get_instance(self) -> DevServerInstance | None:
        return self._instance

    def _set_instance(self, instance: DevServerInstance | None) -> None:
        if instance is not None and self._instance is not None:
            raise AlreadyRunning(self.name)
        self._instance = instance

    def _require_instance(self) -> DevServerInstance:
        if self._instance is None:
            raise NotRunning()
        return self._instance

    def get_url_creator(self) -> UrlCreator:
        if self._url_creator is None:
            raise NotRunning()
        return self._url_creator

    def _publish(self, event: object) -> None:
        if self._events is not None:
            self._events.publish(event)

    # -- lifecycle -----------------------------------------------------

    async def _start_server(
        self, options: BundlerStartOptions, port: int
    ) -> DevServerInstance:
        """Bind the HTTP server on *port*. Implemented by concrete bundlers."""
        raise NotImplementedError

    async def start(self, options: BundlerStartOptions | None = None) -> DevServerInstance:
        """Bind the server and start its sub-services.

        Raises AlreadyRunning if a session is live. On any failure the
        resources acquired so far are released and the error re-raised.
        """
        options = options or BundlerStartOptions()
        if self._instance is not None or self._url_creator is not None:
            raise AlreadyRunning(self.name)

        location = options.location
        port = options.port or self.config.port
        self._host_type = location.host_type
        self._url_creator = UrlCreator(
            CreateUrlOptions(
                scheme=location.scheme or ("https" if options.https else "http"),
                host_type=location.host_type,
                hostname=location.hostname,
            ),
            port,
            self.get_tunnel_url,
            proxy_url=self.config.packager_proxy_url,
            hostname_override=self.config.packager_hostname,
        )

        try:
            self._set_instance(await self._start_server(options, port))
            await self._post_start(options)
        except BaseException:
            logger.error("Failed to start %s dev server, releasing resources", self.name)
            for name, err in await self._release_all():
                logger.error("Error stopping %s: %s", name, err)
            raise

        instance = self._require_instance()
        logger.info("%s dev server running at %s", self.name, instance.location.url)
        self._publish(DevServerStartedEvent(
            name=self.name, url=instance.location.url, port=instance.location.port,
        ))
        return instance

    async def _post_start(self, options: BundlerStartOptions) -> None:
        if options.location.host_type == "tunnel" and not self.config.offline:
            await self._start_tunnel()
        # After the tunnel so that the session reports the public URL.
        await self._start_dev_session()

    async def _start_tunnel(self) -> Tunnel | None:
        instance = self._instance
        if instance is None:
            return None
        port = instance.location.port
        logger.debug("[tunnel] connect to port: %d", port)
        self._tunnel = self._tunnel_factory(port)
        url = await self._tunnel.start()
        self._publish(TunnelReadyEvent(url=url))
        return self._tunnel

    async def _start_dev_session(self) -> None:
        try:
            url = self.get_native_runtime_url()
        except TunnelNotStarted:
            # Offline tunnel sessions have nothing public to report.
            url = None
        self._dev_session = self._session_factory(url)
        await self._dev_session.start(runtime="native")

    async def stop(self) -> None:
        """Release every owned resource; no-op when already stopped.

        Raises TeardownPartialFailure after all releases were attempted if
        any of them failed. The instance is cleared either way.
        """
        if self._instance is None and self._url_creator is None:
            return
        errors = await self._release_all()
        self._publish(DevServerStoppedEvent(name=self.name, failures=len(errors)))
        if errors:
            raise TeardownPartialFailure(errors)
        logger.info("%s dev server stopped", self.name)

    def _release_steps(
        self,
    ) -> list[tuple[str, str, Callable[[Any], Awaitable[None]]]]:
        return [
            ("development session", "_dev_session", lambda session: session.stop()),
            ("tunnel", "_tunnel", lambda tunnel: tunnel.stop()),
            ("server", "_instance", self._close_server),
        ]

    async def _release_all(self) -> list[tuple[str, BaseException]]:
        """Release session, tunnel and server in that order.

        A handle is cleared only once its release has been attempted. If the
        caller is cancelled mid-release, the remaining releases still run
        (shielded) before the cancellation propagates.
        """
        errors: list[tuple[str, BaseException]] = []
        cancelled: asyncio.CancelledError | None = None
        for name, attr, release in self._release_steps():
            handle = getattr(self, attr)
            if handle is None:
                continue
            setattr(self, attr, None)
            try:
                if cancelled is None:
                    await release(handle)
                else:
                    await asyncio.shield(release(handle))
            except asyncio.CancelledError as e:
                logger.warning("Stopping %s was cancelled, releasing the rest", name)
                cancelled = cancelled or e
            except Exception as e:
                logger.error("Error stopping %s: %s", name, e)
                errors.append((name, e))

        self._url_creator = None
        self._launchers.clear()
        if cancelled is not None:
            raise cancelled
        return errors

    async def _close_server(self, instance: DevServerInstance) -> None:
        try:
            await asyncio.wait_for(
                instance.server.close(), timeout=self.config.server_close_timeout
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"Timeout waiting for '{self.name}' dev server to close")

    # -- messaging -----------------------------------------------------

    def broadcast_message(self, method: str, params: dict | None = None) -> None:
        """Send *method* (e.g. ``reload``, ``devMenu``) to connected clients."""
        self._require_instance().message_socket.broadcast(method, params)

    # -- platforms -----------------------------------------------------

    async def open_platform(
        self,
        runtime: PlatformRuntime | str,
        options: LaunchOptions | None = None,
    ) -> LaunchResult:
        """Open the project on *runtime*. Returns the URL that was opened."""
        self._require_instance()
        runtime = PlatformRuntime(runtime)
        try:
            if runtime is PlatformRuntime.DESKTOP:
                url = self.get_dev_server_url(host_type="localhost")
                await open_browser(url)
                result = LaunchResult(url=url)
            else:
                launcher = self._get_platform_launcher(runtime)
                descriptor = LaunchDescriptor(runtime="custom" if self.is_dev_client else "expo")
                result = await launcher.open(descriptor, options or LaunchOptions())
        except LaunchFailed:
            raise
        except Exception as e:
            raise LaunchFailed(runtime.value, e) from e

        self._publish(PlatformOpenedEvent(runtime=runtime.value, url=result.url))
        return result

    def _get_platform_launcher(self, runtime: PlatformRuntime) -> PlatformLauncher:
        launcher = self._launchers.get(runtime)
        if launcher is not None:
            return launcher
        factory = self._launcher_factories.get(runtime)
        if factory is None:
            raise ValueError(f"No launcher registered for '{runtime.value}'")
        launcher = factory(LauncherContext(
            get_dev_server_url=self.get_dev_server_url,
            get_expo_go_url=lambda installed: self.get_expo_go_url(runtime, installed),
            get_custom_runtime_url=self.get_custom_runtime_url,
        ))
        self._launchers[runtime] = launcher
        return launcher

    # -- URLs ----------------------------------------------------------

    def get_tunnel_url(self) -> str | None:
        return self._tunnel.public_url if self._tunnel is not None else None

    def get_dev_server_url(self, host_type: str | None = None) -> str | None:
        """URL the server is bound on, or None when stopped."""
        if self._instance is None:
            return None
        location = self._instance.location
        if host_type == "localhost":
            return f"{location.protocol}://localhost:{location.port}"
        return location.url

    def get_js_inspector_base_url(self) -> str:
        if self._host_type == "tunnel":
            url = self.get_tunnel_url() or self.get_dev_server_url(host_type="localhost")
            if url is None:
                raise NotRunning()
            return url
        return self.get_url_creator().construct_url(scheme="http")

    def _is_redirect_page_enabled(self) -> bool:
        """The loading page only helps projects that can open a dev build."""
        if self.is_dev_client:
            return False
        launcher_pkg = self.project_root / "node_modules" / "expo-dev-launcher" / "package.json"
        return launcher_pkg.exists()

    def get_expo_go_url(
        self,
        platform: PlatformRuntime | str | None,
        is_development_build_installed: bool | None,
    ) -> str:
        """URL that opens the project in Expo Go on *platform*.

        When the project has a development build available and one is
        installed on the target, the loading page is returned instead so the
        user can choose between the two clients.  ``None`` means the install
        state was not checked; Expo Go is used without a warning.
        """
        url_creator = self.get_url_creator()
        key = platform.value if isinstance(platform, PlatformRuntime) else platform
        if self._is_redirect_page_enabled():
            if is_development_build_installed:
                return url_creator.construct_loading_url(_LOADING_PAGE_PLATFORMS.get(key))
            if is_development_build_installed is False:
                logger.warning(
                    "No development build is installed on the %s, opening the project in Expo Go.",
                    key or "device",
                )
        return url_creator.construct_url(scheme="exp")

    def get_custom_runtime_url(
        self,
        scheme: str | None = None,
        host_type: str | None = None,
        hostname: str | None = None,
    ) -> str | None:
        return self.get_url_creator().construct_dev_client_url(
            scheme=scheme, host_type=host_type, hostname=hostname
        )

    def get_native_runtime_url(
        self,
        scheme: str | None = None,
        host_type: str | None = None,
        hostname: str | None = None,
    ) -> str:
        """Deep link into the installed runtime.

        Development clients get ``<scheme>://expo-development-client/?url=...``
        (falling back to the server URL when no custom scheme is usable).
        Expo Go always gets ``exp://``; a *scheme* override is ignored there.
        """
        if self.is_dev_client:
            url = self.get_custom_runtime_url(
                scheme=scheme, host_type=host_type, hostname=hostname
            )
            return url or self._require_instance().location.url
        return self.get_url_creator().construct_url(
            scheme="exp", host_type=host_type, hostname=hostname
        )

    # -- middleware ----------------------------------------------------

    async def get_manifest_middleware(
        self,
        force_manifest_type: str | None = None,
        mode: str = "development",
        minify: bool = False,
    ) -> ManifestMiddleware:
        manifest_type = force_manifest_type or "classic"
        middleware_class = MANIFEST_MIDDLEWARES.get(manifest_type)
        if middleware_class is None:
            raise UnknownManifestType(manifest_type)
        url_creator = self.get_url_creator()
        return middleware_class(
            self.project_root, url_creator.construct_url, mode=mode, minify=minify,
        )

    # -- default collaborators -----------------------------------------

    def _create_tunnel(self, port: int) -> AsyncTunnel:
        return AsyncTunnel(
            port,
            timeout=self.config.tunnel_timeout,
            retries=self.config.tunnel_retries,
        )

    def _create_session(self, url: str | None) -> DevelopmentSession:
        return DevelopmentSession(
            self.project_root,
            url,
            api_url=self.config.session_api_url,
            timeout=self.config.session_timeout,
            offline=self.config.offline,
        )
