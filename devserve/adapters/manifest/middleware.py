"""Manifest endpoints served at ``/`` to native runtimes.

Two manifest shapes are registered: ``classic`` (legacy Expo Go) and
``expo-updates`` (the expo-updates protocol).  Both are built from the
project's ``app.json`` plus URLs derived from the request's host name so
that a device on the LAN and one behind a tunnel each get addresses they
can reach.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from urllib.parse import urlencode

from aiohttp import web

from devserve.config import read_app_config

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = ("ios", "android")

ConstructUrl = Callable[..., str]


class ManifestMiddleware:
    manifest_type = "base"

    def __init__(
        self,
        project_root: Path,
        construct_url: ConstructUrl,
        mode: str = "development",
        minify: bool = False,
    ) -> None:
        self.project_root = Path(project_root)
        self._construct_url = construct_url
        self.mode = mode
        self.minify = minify

    async def handle(self, request: web.Request) -> web.Response:
        platform = (
            request.headers.get("expo-platform")
            or request.query.get("platform")
            or ""
        ).lower()
        if platform not in SUPPORTED_PLATFORMS:
            raise web.HTTPBadRequest(
                text=f"Must specify expo-platform header or query parameter "
                f"({' or '.join(SUPPORTED_PLATFORMS)})"
            )

        hostname = request.url.host
        exp = read_app_config(self.project_root)
        manifest = self.build_manifest(exp, platform, hostname)
        logger.debug("Serving %s manifest for %s to %s", self.manifest_type, platform, hostname)
        return web.json_response(manifest, headers=self.response_headers())

    def response_headers(self) -> dict[str, str]:
        return {"Cache-Control": "private, max-age=0"}

    # ------------------------------------------------------------------

    def host_uri(self, hostname: str | None) -> str:
        url = self._construct_url(scheme="http", hostname=hostname)
        return url.split("://", 1)[-1]

    def bundle_url(self, platform: str, hostname: str | None, main_module: str) -> str:
        base = self._construct_url(scheme="http", hostname=hostname)
        query = urlencode({
            "platform": platform,
            "dev": str(self.mode != "production").lower(),
            "hot": "false",
            "minify": str(self.minify).lower(),
        })
        return f"{base}/{main_module}.bundle?{query}"

    def expo_go_fields(self, hostname: str | None, main_module: str) -> dict:
        return {
            "debuggerHost": self.host_uri(hostname),
            "developer": {"tool": "expo-cli", "projectRoot": str(self.project_root)},
            "packagerOpts": {"dev": self.mode != "production"},
            "mainModuleName": main_module,
        }

    def build_manifest(self, exp: dict, platform: str, hostname: str | None) -> dict:
        raise NotImplementedError


class ClassicManifestMiddleware(ManifestMiddleware):
    manifest_type = "classic"

    def build_manifest(self, exp: dict, platform: str, hostname: str | None) -> dict:
        main_module = exp.get("entryPoint", "index").removesuffix(".js")
        return {
            **exp,
            **self.expo_go_fields(hostname, main_module),
            "hostUri": self.host_uri(hostname),
            "bundleUrl": self.bundle_url(platform, hostname, main_module),
            "id": f"@anonymous/{exp.get('slug', 'app')}",
        }


class ExpoUpdatesManifestMiddleware(ManifestMiddleware):
    manifest_type = "expo-updates"

    def response_headers(self) -> dict[str, str]:
        return {
            **super().response_headers(),
            "expo-protocol-version": "0",
            "expo-sfv-version": "0",
        }

    def build_manifest(self, exp: dict, platform: str, hostname: str | None) -> dict:
        main_module = exp.get("entryPoint", "index").removesuffix(".js")
        return {
            "id": str(uuid.uuid4()),
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "runtimeVersion": exp.get("runtimeVersion")
            or f"exposdk:{exp.get('sdkVersion', 'UNVERSIONED')}",
            "launchAsset": {
                "key": "bundle",
                "contentType": "application/javascript",
                "url": self.bundle_url(platform, hostname, main_module),
            },
            "assets": [],
            "metadata": {},
            "extra": {
                "expoClient": {**exp, "hostUri": self.host_uri(hostname)},
                "expoGo": self.expo_go_fields(hostname, main_module),
            },
        }


MANIFEST_MIDDLEWARES: dict[str, type[ManifestMiddleware]] = {
    "classic": ClassicManifestMiddleware,
    "expo-updates": ExpoUpdatesManifestMiddleware,
}
