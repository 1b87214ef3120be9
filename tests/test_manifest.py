"""Tests for manifest middleware shapes."""
from __future__ import annotations

from pathlib import Path

import pytest

from devserve.adapters.manifest.middleware import (
    MANIFEST_MIDDLEWARES,
    ClassicManifestMiddleware,
    ExpoUpdatesManifestMiddleware,
)
from devserve.core.url_creator import CreateUrlOptions, UrlCreator

EXP = {"name": "Demo", "slug": "demo", "sdkVersion": "50.0.0"}


@pytest.fixture
def construct_url():
    return UrlCreator(CreateUrlOptions(scheme="http"), port=8081).construct_url


class TestRegistry:
    def test_registered_types(self):
        assert MANIFEST_MIDDLEWARES == {
            "classic": ClassicManifestMiddleware,
            "expo-updates": ExpoUpdatesManifestMiddleware,
        }


class TestClassicManifest:
    def test_shape(self, project_root: Path, construct_url):
        middleware = ClassicManifestMiddleware(project_root, construct_url)
        manifest = middleware.build_manifest(EXP, "android", "192.168.1.5")

        assert manifest["name"] == "Demo"
        assert manifest["hostUri"] == "192.168.1.5:8081"
        assert manifest["debuggerHost"] == "192.168.1.5:8081"
        assert manifest["bundleUrl"] == (
            "http://192.168.1.5:8081/index.bundle"
            "?platform=android&dev=true&hot=false&minify=false"
        )
        assert manifest["packagerOpts"] == {"dev": True}
        assert manifest["developer"]["projectRoot"] == str(project_root)

    def test_production_flags(self, project_root: Path, construct_url):
        middleware = ClassicManifestMiddleware(
            project_root, construct_url, mode="production", minify=True,
        )
        manifest = middleware.build_manifest(EXP, "ios", None)
        assert manifest["bundleUrl"].endswith("platform=ios&dev=false&hot=false&minify=true")
        assert manifest["hostUri"] == "100.100.1.100:8081"

    def test_custom_entry_point(self, project_root: Path, construct_url):
        middleware = ClassicManifestMiddleware(project_root, construct_url)
        manifest = middleware.build_manifest({**EXP, "entryPoint": "src/main.js"}, "ios", "h")
        assert manifest["mainModuleName"] == "src/main"
        assert "/src/main.bundle?" in manifest["bundleUrl"]


class TestExpoUpdatesManifest:
    def test_shape(self, project_root: Path, construct_url):
        middleware = ExpoUpdatesManifestMiddleware(project_root, construct_url)
        manifest = middleware.build_manifest(EXP, "ios", "10.0.0.2")

        assert manifest["runtimeVersion"] == "exposdk:50.0.0"
        assert manifest["launchAsset"]["url"].startswith("http://10.0.0.2:8081/index.bundle?")
        assert manifest["extra"]["expoClient"]["hostUri"] == "10.0.0.2:8081"
        assert manifest["extra"]["expoGo"]["mainModuleName"] == "index"
        assert manifest["assets"] == []

    def test_headers(self, project_root: Path, construct_url):
        headers = ExpoUpdatesManifestMiddleware(project_root, construct_url).response_headers()
        assert headers["expo-protocol-version"] == "0"
        assert headers["Cache-Control"] == "private, max-age=0"

    def test_unique_ids(self, project_root: Path, construct_url):
        middleware = ExpoUpdatesManifestMiddleware(project_root, construct_url)
        first = middleware.build_manifest(EXP, "ios", "h")
        second = middleware.build_manifest(EXP, "ios", "h")
        assert first["id"] != second["id"]
