"""Cloudflared quick-tunnel provider."""
from __future__ import annotations

import asyncio
import logging
import re
import shutil

from devserve.core.subprocess_tracker import track, untrack

logger = logging.getLogger(__name__)

_CLOUDFLARED_URL_RE = re.compile(r"(https://[a-zA-Z0-9-]+\.trycloudflare\.com)")


class CloudflaredTunnelProvider:
    """Runs ``cloudflared tunnel --url http://localhost:PORT`` and reads its URL.

    cloudflared prints the assigned ``trycloudflare.com`` address on stderr
    once the edge connection is up; :meth:`start` blocks until that line is
    seen or the process exits.  Callers bound the wait with a timeout.
    """

    def __init__(self, executable: str = "cloudflared") -> None:
        self._executable = executable
        self._process: asyncio.subprocess.Process | None = None
        self._public_url: str | None = None
        self._drain_task: asyncio.Task | None = None

    @property
    def public_url(self) -> str | None:
        return self._public_url

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def provider_name(self) -> str:
        return "cloudflared"

    async def start(self, port: int) -> str:
        """Start the tunnel for *port*. Returns the public HTTPS URL."""
        path = shutil.which(self._executable)
        if not path:
            raise RuntimeError(
                "cloudflared not found in PATH. Install: brew install cloudflared"
            )

        self._process = await asyncio.create_subprocess_exec(
            path,
            "tunnel", "--url", f"http://localhost:{port}",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        track(self._process.pid)
        logger.debug("cloudflared started (pid %d) for port %d", self._process.pid, port)

        try:
            self._public_url = await self._read_public_url()
        except BaseException:
            await self.stop()
            raise
        # cloudflared keeps logging; an unread pipe would eventually block it.
        self._drain_task = asyncio.create_task(self._drain_stderr())
        logger.info("Tunnel URL: %s", self._public_url)
        return self._public_url

    async def _read_public_url(self) -> str:
        if not self._process or not self._process.stderr:
            raise RuntimeError("cloudflared process has no stderr")

        while True:
            line = await self._process.stderr.readline()
            if not line:
                raise RuntimeError(
                    f"cloudflared exited before reporting a URL "
                    f"(code {self._process.returncode})"
                )
            text = line.decode("utf-8", errors="replace").strip()
            logger.debug("cloudflared: %s", text)
            match = _CLOUDFLARED_URL_RE.search(text)
            if match:
                return match.group(1)

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr if self._process else None
        if stderr is None:
            return
        while True:
            line = await stderr.readline()
            if not line:
                return
            logger.debug("cloudflared: %s", line.decode("utf-8", errors="replace").strip())

    async def stop(self) -> None:
        """Terminate cloudflared (kill after 5 s). Safe to call repeatedly."""
        drain, self._drain_task = self._drain_task, None
        if drain is not None:
            drain.cancel()
        proc = self._process
        if proc and proc.returncode is None:
            try:
                proc.terminate()
                await asyncio.wait_for(proc.wait(), timeout=5)
            except (asyncio.TimeoutError, ProcessLookupError):
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
            logger.info("Stopped cloudflared process")
        if proc:
            untrack(proc.pid)
        self._process = None
        self._public_url = None
