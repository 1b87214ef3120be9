from __future__ import annotations

import asyncio
import logging
import webbrowser

logger = logging.getLogger(__name__)


async def open_browser(url: str) -> bool:
    """Open *url* in the default browser without blocking the event loop."""
    opened = await asyncio.to_thread(webbrowser.open, url)
    if not opened:
        logger.warning("Could not open a browser for %s", url)
    return opened
