from __future__ import annotations

import asyncio
import logging
import os
import signal

from devserve.adapters.metro.server import MetroDevServer
from devserve.capabilities.platforms.base import PlatformRuntime
from devserve.config import DevServerConfig
from devserve.core import subprocess_tracker
from devserve.core.dev_server import BundlerStartOptions, LocationOptions
from devserve.core.errors import DevServerError
from devserve.core.events import EventBus, PlatformOpenedEvent, TunnelReadyEvent

LOG_FILE = os.environ.get("DEVSERVE_LOG_FILE", "/tmp/devserve.log")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(LOG_FILE),
    ],
)
logger = logging.getLogger("devserve")


async def _log_events(event_bus: EventBus) -> None:
    """Surface tunnel/launch events to the terminal."""

    async def tunnels() -> None:
        async for event in event_bus.iter_events(TunnelReadyEvent):
            logger.info("Tunnel ready: %s", event.url)

    async def launches() -> None:
        async for event in event_bus.iter_events(PlatformOpenedEvent):
            logger.info("Opened %s on %s", event.url, event.runtime)

    await asyncio.gather(tunnels(), launches())


async def main() -> None:
    config = DevServerConfig.from_env()
    logger.info("devserve starting for %s", config.project_root)

    subprocess_tracker.configure(config.data_dir)
    reaped = subprocess_tracker.reap_stale()
    if reaped:
        logger.info("Cleaned up %d stale subprocess(es)", reaped)

    event_bus = EventBus()
    events_task = asyncio.create_task(_log_events(event_bus))
    server = MetroDevServer(config.project_root, config, event_bus=event_bus)

    stop_event = asyncio.Event()

    def handle_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await server.start(BundlerStartOptions(
            port=config.port,
            https=config.https,
            location=LocationOptions(scheme=config.scheme, host_type=config.host_type),
        ))
        logger.info("Native runtime URL: %s", server.get_native_runtime_url())

        target = os.environ.get("DEVSERVE_OPEN", "")
        if target:
            try:
                await server.open_platform(PlatformRuntime(target))
            except ValueError:
                logger.warning("Unknown DEVSERVE_OPEN target: %s", target)
            except DevServerError as e:
                logger.error("%s", e)

        logger.info("devserve is running. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        events_task.cancel()
        try:
            await server.stop()
        except DevServerError as e:
            logger.error("%s", e)
        logger.info("devserve stopped.")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
