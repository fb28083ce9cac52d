"""Persistence for the port registry.

The registry is stored as YAML with three sorted port lists. A missing file
means an empty registry; anything unreadable is a hard error so manual
ports are never silently dropped.
"""

from __future__ import annotations

import contextlib
import logging
import os
import pathlib

import yaml
from pydantic import ValidationError

from wsl_port_forwarder.errors import StateFileError
from wsl_port_forwarder.models import PortsConfig

logger = logging.getLogger(__name__)


def load_or_default(path: pathlib.Path) -> PortsConfig:
    """Load the registry from *path*, or return an empty one if absent."""
    if not path.exists():
        logger.debug("No state file at %s, starting empty", path)
        return PortsConfig()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StateFileError(f"failed reading state from {path}: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise StateFileError(f"failed parsing yaml from {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise StateFileError(
            f"failed parsing state from {path}: expected a mapping, got {type(data).__name__}"
        )

    try:
        return PortsConfig.model_validate(data)
    except ValidationError as exc:
        raise StateFileError(f"invalid port state in {path}: {exc}") from exc


def save(path: pathlib.Path, config: PortsConfig) -> None:
    """Write the registry to *path*, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StateFileError(f"failed creating state dir {path.parent}: {exc}") from exc

    raw = yaml.safe_dump(config.to_document(), sort_keys=False, default_flow_style=False)
    # Replace atomically; an interrupted write must never leave an empty registry
    tmp_path = path.with_name(f"{path.name}.tmp")
    try:
        tmp_path.write_text(raw, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise StateFileError(f"failed writing state {path}: {exc}") from exc
