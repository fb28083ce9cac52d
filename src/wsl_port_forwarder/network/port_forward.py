"""Rule synchronizer for WSL port forwarding.

Drives the host portproxy table so every desired port forwards from the
wildcard listen address to the same port on the WSL guest.

Each port is handled in two steps with different failure policies:

1. delete any existing rule for the listen port (failures are ignored);
2. add the rule (failures raise and abort the remaining ports).
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Iterable

from wsl_port_forwarder.errors import PortForwarderError
from wsl_port_forwarder.privileged.helper import PortProxyOperations

logger = logging.getLogger(__name__)


class RuleSynchronizer:
    """Applies a desired port list to the host portproxy table.

    Parameters
    ----------
    portproxy_ops:
        Backend that issues the delete/add/show commands.
    """

    def __init__(self, portproxy_ops: PortProxyOperations) -> None:
        self._ops = portproxy_ops

    async def apply(
        self, guest_ip: ipaddress.IPv4Address, ports: Iterable[int]
    ) -> None:
        """Forward each port in *ports*, in order, to *guest_ip*.

        Raises
        ------
        PortForwarderError:
            The first add failure; later ports are not touched.
        """
        for port in ports:
            try:
                await self._ops.delete_rule(port)
            except PortForwarderError as exc:
                logger.debug("Ignoring delete failure for port %d: %s", port, exc)

            await self._ops.add_rule(port, guest_ip, port)
            logger.debug("Forwarded port %d -> %s:%d", port, guest_ip, port)

    async def show(self) -> str:
        """Return the current mapping table, or a description of why not."""
        try:
            return await self._ops.show_rules()
        except PortForwarderError as exc:
            return f"Could not fetch netsh mappings: {exc}"
