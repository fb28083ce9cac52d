"""Caddy reverse proxy probe.

Reads the live config from Caddy's admin API and extracts listen
addresses (``"listen": [":443"]``) and upstream dials
(``"dial": "localhost:3000"``).
"""

from __future__ import annotations

import logging

import httpx

from wsl_port_forwarder.config import CaddyConfig
from wsl_port_forwarder.scanner.extract import extract_ports

logger = logging.getLogger(__name__)


class CaddyProbe:
    """Discover ports from a running Caddy instance."""

    def __init__(self, admin_url: str | None = None, timeout: float | None = None) -> None:
        defaults = CaddyConfig()
        self._admin_url = admin_url or defaults.admin_url
        self._timeout = defaults.timeout if timeout is None else timeout

    @property
    def admin_url(self) -> str:
        return self._admin_url

    async def probe(self) -> set[int]:
        """Return discovered ports, or an empty set if Caddy is unreachable."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(self._admin_url)
                resp.raise_for_status()
                document = resp.json()
        except httpx.HTTPError as exc:
            logger.debug("caddy detection failed: %s", exc)
            return set()
        except ValueError as exc:
            logger.debug("caddy returned invalid json: %s", exc)
            return set()

        ports = extract_ports(document)
        logger.debug("caddy reported ports %s", sorted(ports))
        return ports
