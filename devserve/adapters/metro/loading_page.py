"""Interstitial page at ``/_expo/loading``.

Browsers (and device cameras scanning a QR code) cannot always follow a
redirect straight into a native scheme, so this page redirects with both a
meta refresh and script, plus a link as a last resort.
"""
from __future__ import annotations

import html
import json
import logging
from typing import Callable

from aiohttp import web

logger = logging.getLogger(__name__)

_LOADING_HTML_TEMPLATE = """\
<!DOCTYPE html>
<html><head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta http-equiv="refresh" content="0;url={url}">
<title>Opening project…</title>
</head><body>
<p>Opening project{platform_note}…</p>
<p><a href="{url}">Tap here if not redirected</a></p>
<script>window.location.href={url_js};</script>
</body></html>
"""


def render_loading_page(url: str, platform: str | None = None) -> str:
    escaped = html.escape(url, quote=True)
    return _LOADING_HTML_TEMPLATE.format(
        url=escaped,
        url_js=json.dumps(url).replace("</", "<\\/"),
        platform_note=f" on {html.escape(platform)}" if platform else "",
    )


def make_loading_handler(get_runtime_url: Callable[[], str]):
    async def handle(request: web.Request) -> web.Response:
        platform = request.query.get("platform")
        url = get_runtime_url()
        logger.debug("Loading page redirecting %s to %s", platform or "client", url)
        return web.Response(
            text=render_loading_page(url, platform), content_type="text/html",
        )

    return handle
