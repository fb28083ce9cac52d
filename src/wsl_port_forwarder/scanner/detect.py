"""Run every discovery probe and hand back the combined result."""

from __future__ import annotations

import asyncio
import logging
from typing import NamedTuple, Protocol

from wsl_port_forwarder.config import Settings
from wsl_port_forwarder.scanner.caddy import CaddyProbe
from wsl_port_forwarder.scanner.pm2 import PM2Probe

logger = logging.getLogger(__name__)


class Probe(Protocol):
    async def probe(self) -> set[int]: ...


class DetectedPorts(NamedTuple):
    pm2: set[int]
    caddy: set[int]


class PortDetector:
    """Runs the PM2 and Caddy probes concurrently.

    A probe passed as ``None`` is treated as disabled and contributes
    nothing. ``detect()`` never raises.
    """

    def __init__(self, pm2: Probe | None, caddy: Probe | None) -> None:
        self._pm2 = pm2
        self._caddy = caddy

    @classmethod
    def from_settings(cls, settings: Settings) -> PortDetector:
        pm2 = PM2Probe(command=settings.pm2.command) if settings.pm2.enabled else None
        caddy = (
            CaddyProbe(admin_url=settings.caddy.admin_url, timeout=settings.caddy.timeout)
            if settings.caddy.enabled
            else None
        )
        return cls(pm2=pm2, caddy=caddy)

    async def detect(self) -> DetectedPorts:
        pm2_ports, caddy_ports = await asyncio.gather(
            _run(self._pm2, "pm2"),
            _run(self._caddy, "caddy"),
        )
        return DetectedPorts(pm2=pm2_ports, caddy=caddy_ports)


async def _run(probe: Probe | None, name: str) -> set[int]:
    if probe is None:
        return set()
    try:
        return await probe.probe()
    except Exception:
        logger.debug("%s probe raised unexpectedly", name, exc_info=True)
        return set()
