"""Configuration loader for WSL Port Forwarder.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the WSLPORT_ prefix with double-underscore
nesting (e.g., WSLPORT_DAEMON__POLL_INTERVAL=10).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import platformdirs
import yaml
from pydantic import BaseModel, Field

APP_NAME = "wsl-port-forwarder"


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class StateConfig(BaseModel):
    path: str | None = None


class DaemonConfig(BaseModel):
    poll_interval: float = 5.0


class PM2Config(BaseModel):
    enabled: bool = True
    command: list[str] = Field(default_factory=lambda: ["pm2", "jlist"])


class CaddyConfig(BaseModel):
    enabled: bool = True
    admin_url: str = "http://localhost:2019/config/"
    timeout: float = 3.0


class PortProxyConfig(BaseModel):
    listen_address: str = "0.0.0.0"
    powershell_candidates: list[str] = Field(
        default_factory=lambda: [
            "/mnt/c/Windows/System32/WindowsPowerShell/v1.0/powershell.exe",
            "/mnt/c/WINDOWS/System32/WindowsPowerShell/v1.0/powershell.exe",
        ]
    )


class GuestConfig(BaseModel):
    command: list[str] = Field(default_factory=lambda: ["hostname", "-I"])


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    state: StateConfig = Field(default_factory=StateConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    pm2: PM2Config = Field(default_factory=PM2Config)
    caddy: CaddyConfig = Field(default_factory=CaddyConfig)
    portproxy: PortProxyConfig = Field(default_factory=PortProxyConfig)
    guest: GuestConfig = Field(default_factory=GuestConfig)

    def state_path(self) -> pathlib.Path:
        """Location of the persisted ports file."""
        if self.state.path:
            return pathlib.Path(self.state.path).expanduser()
        return config_dir() / "ports.yaml"


def config_dir() -> pathlib.Path:
    """Per-user configuration directory for this tool."""
    return pathlib.Path(platformdirs.user_config_dir(APP_NAME))


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "WSLPORT_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect WSLPORT_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: WSLPORT_CADDY__TIMEOUT=1.5
    becomes  {"caddy": {"timeout": 1.5}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        if len(parts) < 2:
            # Flat names such as WSLPORT_LOG_LEVEL are not settings
            continue
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "defaults.yaml"


def _read_yaml(path: pathlib.Path) -> dict[str, Any]:
    with open(path) as fh:
        data = yaml.safe_load(fh)
    return data if isinstance(data, dict) else {}


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < user file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML settings file. If ``None`` or the file does not
        exist, built-in defaults are used.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        base = _deep_merge(base, _read_yaml(path))

    # The per-user settings file is skipped when an explicit path is given
    # so tests passing a custom file aren't polluted by the real one.
    if config_path is None:
        user_path = config_dir() / "settings.yaml"
        if user_path.exists():
            base = _deep_merge(base, _read_yaml(user_path))

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
