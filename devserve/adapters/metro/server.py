"""aiohttp dev server fronting the Metro bundler endpoints."""
from __future__ import annotations

import logging

from aiohttp import web

from devserve.adapters.metro.loading_page import make_loading_handler
from devserve.adapters.metro.message_socket import MessageSocket
from devserve.core.dev_server import (
    BundlerDevServer,
    BundlerStartOptions,
    DevServerInstance,
    ServerLocation,
)

logger = logging.getLogger(__name__)


async def _handle_status(request: web.Request) -> web.Response:
    return web.Response(text="packager-status:running")


class _RunnerHandle:
    """Closes the aiohttp runner and the message socket together."""

    def __init__(self, runner: web.AppRunner, message_socket: MessageSocket) -> None:
        self._runner = runner
        self._message_socket = message_socket

    async def close(self) -> None:
        await self._message_socket.close()
        await self._runner.cleanup()


class MetroDevServer(BundlerDevServer):
    name = "metro"

    def __init__(self, *args, bind_host: str = "0.0.0.0", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._bind_host = bind_host

    async def _build_app(
        self, options: BundlerStartOptions, message_socket: MessageSocket
    ) -> tuple[web.Application, dict]:
        manifest = await self.get_manifest_middleware(
            force_manifest_type=options.force_manifest_type,
            mode=options.mode,
            minify=options.minify,
        )
        middleware = {
            "/": manifest.handle,
            "/_expo/loading": make_loading_handler(self.get_native_runtime_url),
            "/status": _handle_status,
        }

        app = web.Application()
        for path, handler in middleware.items():
            app.router.add_get(path, handler)
        app.router.add_get("/message", message_socket.handle)
        return app, middleware

    async def _start_server(
        self, options: BundlerStartOptions, port: int
    ) -> DevServerInstance:
        message_socket = MessageSocket()
        app, middleware = await self._build_app(options, message_socket)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._bind_host, port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        logger.info("Metro dev server listening on %s:%d", self._bind_host, port)

        # Plain HTTP locally; `https` only changes the scheme clients are given.
        protocol = "http"
        host = "localhost"
        return DevServerInstance(
            server=_RunnerHandle(runner, message_socket),
            location=ServerLocation(
                url=f"{protocol}://{host}:{port}",
                port=port,
                protocol=protocol,
                host=host,
            ),
            middleware=middleware,
            message_socket=message_socket,
        )
