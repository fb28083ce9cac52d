"""Command orchestration for the port forwarder.

``PortForwarder`` wires the registry, discovery, guest resolution and rule
synchronizer together and implements the one-shot commands. Every command
reloads the registry, refreshes discovered ports and persists the result
before touching the host.
"""

from __future__ import annotations

import ipaddress
import logging
import pathlib
from dataclasses import dataclass

from wsl_port_forwarder import state
from wsl_port_forwarder.config import Settings
from wsl_port_forwarder.models import PortsConfig, validate_port
from wsl_port_forwarder.network.guest import GuestAddressResolver
from wsl_port_forwarder.network.port_forward import RuleSynchronizer
from wsl_port_forwarder.privileged.helper import create_portproxy_ops
from wsl_port_forwarder.scanner.detect import PortDetector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusReport:
    guest_ip: ipaddress.IPv4Address
    state_path: pathlib.Path
    ports: PortsConfig
    rules: str


class PortForwarder:
    """Facade over the forwarding pipeline.

    Parameters
    ----------
    state_path:
        Location of the persisted port registry.
    detector:
        Runs the PM2 and Caddy probes.
    guest_resolver:
        Resolves the WSL guest IPv4 address.
    synchronizer:
        Applies rules to the host portproxy table.
    """

    def __init__(
        self,
        state_path: pathlib.Path,
        detector: PortDetector,
        guest_resolver: GuestAddressResolver,
        synchronizer: RuleSynchronizer,
    ) -> None:
        self.state_path = state_path
        self.detector = detector
        self.guest_resolver = guest_resolver
        self.synchronizer = synchronizer

    @classmethod
    def from_settings(cls, settings: Settings) -> PortForwarder:
        return cls(
            state_path=settings.state_path(),
            detector=PortDetector.from_settings(settings),
            guest_resolver=GuestAddressResolver(command=settings.guest.command),
            synchronizer=RuleSynchronizer(create_portproxy_ops(settings.portproxy)),
        )

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def load(self) -> PortsConfig:
        return state.load_or_default(self.state_path)

    async def refresh(self, config: PortsConfig) -> PortsConfig:
        """Replace discovered ports in *config* and persist it."""
        detected = await self.detector.detect()
        config.set_detected_ports(detected.pm2, detected.caddy)
        state.save(self.state_path, config)
        return config

    async def sync_config(self, config: PortsConfig) -> None:
        """Point every port in *config* at the current guest address."""
        guest_ip = await self.guest_resolver.resolve()
        ports = sorted(config.all_ports())
        logger.info("Syncing %d port(s) to %s", len(ports), guest_ip)
        await self.synchronizer.apply(guest_ip, ports)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def status(self) -> StatusReport:
        config = await self.refresh(self.load())
        guest_ip = await self.guest_resolver.resolve()
        rules = await self.synchronizer.show()
        return StatusReport(
            guest_ip=guest_ip,
            state_path=self.state_path,
            ports=config,
            rules=rules,
        )

    async def add(self, port: int) -> bool:
        """Add a manual port and sync. Returns True if it was new."""
        validate_port(port)
        config = self.load()
        inserted = config.add_manual_port(port)
        await self.refresh(config)
        await self.sync_config(config)
        return inserted

    async def remove(self, port: int) -> bool:
        """Remove a manual port and sync. Returns True if it was present."""
        validate_port(port)
        config = self.load()
        removed = config.remove_manual_port(port)
        await self.refresh(config)
        await self.sync_config(config)
        return removed

    async def sync(self) -> None:
        config = await self.refresh(self.load())
        await self.sync_config(config)
