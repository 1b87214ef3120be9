from __future__ import annotations

import socket
from pathlib import Path
from unittest.mock import patch

import pytest

LAN_ADDRESS = "100.100.1.100"


@pytest.fixture(autouse=True)
def lan_address():
    """Pin the LAN address so generated URLs are deterministic."""
    with patch("devserve.core.url_creator.get_ip_address", return_value=LAN_ADDRESS):
        yield LAN_ADDRESS


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """An empty project directory with a minimal app.json."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "app.json").write_text('{"expo": {"name": "Demo", "slug": "demo"}}')
    return root


@pytest.fixture
def dev_launcher_project(project_root: Path) -> Path:
    """A project that can resolve expo-dev-launcher (enables the loading page)."""
    pkg = project_root / "node_modules" / "expo-dev-launcher"
    pkg.mkdir(parents=True)
    (pkg / "package.json").write_text("{}")
    return project_root


@pytest.fixture
def free_port() -> int:
    """An available TCP port on this machine."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        return s.getsockname()[1]
