from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
HOST_TYPES = ("lan", "tunnel", "localhost")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class DevServerConfig:
    project_root: Path = field(default_factory=Path.cwd)
    port: int = DEFAULT_PORT
    https: bool = False
    host_type: str = "lan"
    scheme: str | None = None
    is_dev_client: bool = False
    offline: bool = False
    tunnel_timeout: float = 30.0
    tunnel_retries: int = 2
    session_api_url: str = "https://api.expo.dev/v2/"
    session_timeout: float = 10.0
    server_close_timeout: float = 2.0
    packager_proxy_url: str | None = None
    packager_hostname: str | None = None
    data_dir: Path = field(default_factory=lambda: Path.home() / ".devserve")

    @classmethod
    def from_env(cls) -> DevServerConfig:
        load_dotenv()
        host_type = os.environ.get("DEVSERVE_HOST_TYPE", "lan").lower()
        if host_type not in HOST_TYPES:
            raise ValueError(
                f"DEVSERVE_HOST_TYPE must be one of {', '.join(HOST_TYPES)}, got {host_type!r}"
            )
        root = os.environ.get("DEVSERVE_PROJECT_ROOT", "")
        data_dir = os.environ.get("DEVSERVE_DATA_DIR", "")
        return cls(
            project_root=Path(root).expanduser().resolve() if root else Path.cwd(),
            port=_env_int("DEVSERVE_PORT", DEFAULT_PORT),
            https=_env_bool("DEVSERVE_HTTPS"),
            host_type=host_type,
            scheme=os.environ.get("DEVSERVE_SCHEME") or None,
            is_dev_client=_env_bool("DEVSERVE_DEV_CLIENT"),
            offline=_env_bool("EXPO_OFFLINE"),
            tunnel_timeout=_env_float("DEVSERVE_TUNNEL_TIMEOUT", 30.0),
            tunnel_retries=_env_int("DEVSERVE_TUNNEL_RETRIES", 2),
            session_api_url=os.environ.get(
                "DEVSERVE_SESSION_API_URL", "https://api.expo.dev/v2/"
            ),
            session_timeout=_env_float("DEVSERVE_SESSION_TIMEOUT", 10.0),
            server_close_timeout=_env_float("DEVSERVE_SERVER_CLOSE_TIMEOUT", 2.0),
            packager_proxy_url=os.environ.get("EXPO_PACKAGER_PROXY_URL") or None,
            packager_hostname=(
                os.environ.get("REACT_NATIVE_PACKAGER_HOSTNAME", "").strip() or None
            ),
            data_dir=(
                Path(data_dir).expanduser()
                if data_dir
                else Path.home() / ".devserve"
            ),
        )


def read_app_config(project_root: Path) -> dict:
    """Return the ``expo`` object from ``app.json`` (empty if absent)."""
    path = Path(project_root) / "app.json"
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        return {}
    exp = data.get("expo", data)
    return exp if isinstance(exp, dict) else {}
