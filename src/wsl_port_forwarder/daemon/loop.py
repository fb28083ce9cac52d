"""Periodic reconcile loop that keeps portproxy rules in step with WSL.

Each cycle reloads the registry, refreshes discovered ports, persists them,
resolves the guest address and compares ``(guest_ip, all_ports)`` with what
was last applied. Rules are only rewritten when that pair changes.

Errors from the state file, guest resolution or rule application end the
loop. The daemon is expected to run under a supervisor that restarts it.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field

from wsl_port_forwarder.app import PortForwarder
from wsl_port_forwarder.config import DaemonConfig

logger = logging.getLogger(__name__)


@dataclass
class DaemonState:
    """Last successfully applied guest address and port set."""

    last_ip: ipaddress.IPv4Address | None = None
    last_ports: frozenset[int] = field(default_factory=frozenset)

    def matches(self, ip: ipaddress.IPv4Address, ports: frozenset[int]) -> bool:
        return self.last_ip == ip and self.last_ports == ports


class ReconcileLoop:
    """Poll, diff, and apply only on change.

    Parameters
    ----------
    forwarder:
        Pipeline used for loading, detection, resolution and syncing.
    poll_interval:
        Seconds to wait between cycles.
    """

    def __init__(
        self,
        forwarder: PortForwarder,
        poll_interval: float | None = None,
    ) -> None:
        self._forwarder = forwarder
        self._poll_interval = (
            DaemonConfig().poll_interval if poll_interval is None else poll_interval
        )
        self._state = DaemonState()

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @property
    def state(self) -> DaemonState:
        return self._state

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Run cycles until *shutdown_event* is set or a cycle fails."""
        shutdown_event = shutdown_event or asyncio.Event()
        logger.info("Starting daemon; poll interval = %gs", self._poll_interval)

        while not shutdown_event.is_set():
            await self.run_cycle()

            try:
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self._poll_interval,
                )
            except asyncio.TimeoutError:
                pass

        logger.info("Daemon stopped")

    async def run_cycle(self) -> bool:
        """Run one reconcile cycle. Returns True if rules were applied."""
        forwarder = self._forwarder
        config = await forwarder.refresh(forwarder.load())

        guest_ip = await forwarder.guest_resolver.resolve()
        ports = frozenset(config.all_ports())

        if self._state.matches(guest_ip, ports):
            logger.debug("No change (ip=%s, %d ports)", guest_ip, len(ports))
            return False

        sorted_ports = sorted(ports)
        logger.info(
            "Change detected; syncing portproxy rules: ip=%s ports=%s",
            guest_ip, sorted_ports,
        )
        await forwarder.synchronizer.apply(guest_ip, sorted_ports)
        self._state = DaemonState(last_ip=guest_ip, last_ports=ports)
        return True
