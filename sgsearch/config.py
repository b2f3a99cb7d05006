"""Configuration helpers for sgsearch."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

CONFIG_ENV_VAR = "SGSEARCH_CONFIG"
TOKEN_ENV_VAR = "SRC_ACCESS_TOKEN"
ENDPOINT_ENV_VAR = "SRC_ENDPOINT"
DEFAULT_INSTANCE_URL = "https://sourcegraph.com"
DEFAULT_USER_AGENT = "sgsearch/0.1"
DEFAULT_CONFIG_PATH = Path(
    os.environ.get(CONFIG_ENV_VAR, "~/.config/sgsearch/config.json")
).expanduser()

SETTING_KEYS = ("instance_url", "default_context")


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Everything needed to talk to one search instance."""

    instance_url: str = DEFAULT_INSTANCE_URL
    token: Optional[str] = None
    default_context: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def base_url(self) -> str:
        return self.instance_url.rstrip("/")


def _read_config(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Config file at {path} is not valid JSON") from exc


def _write_config(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2)


def _first_set(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def resolve_connection(
    *,
    instance_url: Optional[str] = None,
    token: Optional[str] = None,
    config_path: Optional[Path] = None,
) -> ConnectionConfig:
    """Build a connection from explicit values, env vars, then the config file.

    A token is optional: public instances answer anonymous searches.
    """
    data = _read_config(config_path or DEFAULT_CONFIG_PATH)
    resolved_url = _first_set(
        instance_url,
        os.getenv(ENDPOINT_ENV_VAR),
        data.get("instance_url"),
    )
    resolved_token = _first_set(
        token,
        os.getenv(TOKEN_ENV_VAR),
        data.get("access_token"),
    )
    return ConnectionConfig(
        instance_url=resolved_url or DEFAULT_INSTANCE_URL,
        token=resolved_token,
        default_context=_first_set(data.get("default_context")),
    )


def store_token(token: str, *, config_path: Optional[Path] = None) -> Path:
    """Persist a token to the config file."""
    token = token.strip()
    if not token:
        raise ValueError("Cannot store empty token")
    path = config_path or DEFAULT_CONFIG_PATH
    data = _read_config(path)
    data["access_token"] = token
    _write_config(path, data)
    return path


def store_setting(key: str, value: str, *, config_path: Optional[Path] = None) -> Path:
    """Persist one of the plain connection settings."""
    if key not in SETTING_KEYS:
        raise ValueError(f"Unknown setting '{key}' (expected one of {', '.join(SETTING_KEYS)})")
    path = config_path or DEFAULT_CONFIG_PATH
    data = _read_config(path)
    value = value.strip()
    if value:
        data[key] = value
    else:
        data.pop(key, None)
    _write_config(path, data)
    return path


def delete_token(*, config_path: Optional[Path] = None) -> None:
    """Remove the stored token if present."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return
    data = _read_config(path)
    data.pop("access_token", None)
    if data:
        _write_config(path, data)
    else:
        path.unlink(missing_ok=True)


def token_status(*, config_path: Optional[Path] = None) -> dict:
    """Return information about where a token can be sourced."""
    path = config_path or DEFAULT_CONFIG_PATH
    env_present = bool(os.getenv(TOKEN_ENV_VAR, "").strip())
    config_present = bool(_read_config(path).get("access_token"))
    return {
        "env": env_present,
        "config_path": str(path) if config_present else None,
    }
