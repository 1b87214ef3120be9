"""Development session reporting.

While a dev server runs, the companion service is told every 20 seconds
that a session is alive at a URL so that signed-in clients can list it.
Reporting is fire-and-forget: network failures are logged and never
propagate into the dev server lifecycle.
"""
from __future__ import annotations

import asyncio
import logging
import socket
from pathlib import Path

import aiohttp

from devserve.config import read_app_config

logger = logging.getLogger(__name__)

UPDATE_FREQUENCY = 20.0  # seconds

_NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def build_session_body(exp: dict, runtime: str, url: str) -> dict:
    hostname = socket.gethostname()
    name = exp.get("name") or exp.get("slug") or "app"
    return {
        "session": {
            "description": f"{name} on {hostname}",
            "hostname": hostname,
            "platform": runtime,
            "config": {
                "description": exp.get("description"),
                "name": exp.get("name"),
                "slug": exp.get("slug"),
                "primaryColor": exp.get("primaryColor"),
            },
            "url": url,
            "source": "desktop",
        }
    }


class DevelopmentSession:
    def __init__(
        self,
        project_root: Path,
        url: str | None,
        api_url: str = "https://api.expo.dev/v2/",
        timeout: float = 10.0,
        offline: bool = False,
    ) -> None:
        self.project_root = Path(project_root)
        self.url = url
        self._api_url = api_url if api_url.endswith("/") else api_url + "/"
        self._timeout = timeout
        self._offline = offline
        self._task: asyncio.Task | None = None
        self._notified = False

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, runtime: str = "native") -> None:
        """Notify once, then keep notifying from a background task.

        Reporting stops for the rest of the session after the first failed
        notification, so an unauthenticated user sees a single warning.
        """
        if self._offline or not self.url:
            logger.debug("Development session reporting disabled (offline or no URL)")
            return
        if self.is_active:
            return

        exp = read_app_config(self.project_root)
        body = build_session_body(exp, runtime, self.url)
        if not await self._notify_alive(body):
            return
        self._task = asyncio.create_task(self._heartbeat(body))

    async def _heartbeat(self, body: dict) -> None:
        while True:
            await asyncio.sleep(UPDATE_FREQUENCY)
            if not await self._notify_alive(body):
                logger.info("Development session reporting stopped")
                return

    async def _notify_alive(self, body: dict) -> bool:
        if await self._post("development-sessions/notify-alive", {"data": body}):
            self._notified = True
            return True
        return False

    async def _post(self, path: str, payload: dict) -> bool:
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as session:
                async with session.post(self._api_url + path, json=payload) as resp:
                    if resp.status >= 400:
                        logger.warning(
                            "Development session %s failed: HTTP %d", path, resp.status
                        )
                        return False
                    return True
        except _NETWORK_ERRORS as e:
            logger.warning("Development session %s failed: %s", path, e)
            return False

    async def stop(self) -> None:
        """Stop the heartbeat and close the session. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._notified:
            self._notified = False
            await self._post(
                "development-sessions/notify-close", {"session": {"url": self.url}}
            )
