"""Privileged portproxy operations abstraction.

Windows ``netsh interface portproxy`` is the only NAT primitive we drive.
From inside WSL it is reached through the host's ``powershell.exe``, which
must run elevated for add/delete to succeed.

The primitive has no upsert and no "delete if exists", so callers combine
``delete_rule`` and ``add_rule`` themselves (see network/port_forward.py).
"""

from __future__ import annotations

import ipaddress
import logging
import os
from abc import ABC, abstractmethod
from typing import Sequence

from wsl_port_forwarder.config import PortProxyConfig
from wsl_port_forwarder.errors import CommandFailedError
from wsl_port_forwarder.process import CommandRunner, CommandResult, run_command

logger = logging.getLogger(__name__)

POWERSHELL_FALLBACK = "powershell.exe"


class PortProxyOperations(ABC):
    """Abstract interface for host portproxy rule management."""

    @abstractmethod
    async def delete_rule(self, listen_port: int) -> None:
        """Delete the rule listening on *listen_port* at the listen address.

        Raises
        ------
        CommandFailedError:
            If the command fails, including when no such rule exists.
        """

    @abstractmethod
    async def add_rule(
        self,
        listen_port: int,
        connect_address: ipaddress.IPv4Address,
        connect_port: int,
    ) -> None:
        """Forward *listen_port* to *connect_address*:*connect_port*.

        Raises
        ------
        CommandFailedError:
            If the rule could not be added (typically missing elevation).
        """

    @abstractmethod
    async def show_rules(self) -> str:
        """Return the current v4tov4 mapping table as text."""


def find_powershell(candidates: Sequence[str] | None = None) -> str:
    """Return the first existing PowerShell path, else rely on ``PATH``."""
    if candidates is None:
        candidates = PortProxyConfig().powershell_candidates
    for path in candidates:
        if os.path.exists(path):
            return path
    return POWERSHELL_FALLBACK


class NetshPortProxyOps(PortProxyOperations):
    """Runs ``netsh interface portproxy`` through Windows PowerShell.

    Parameters
    ----------
    powershell:
        PowerShell executable. Resolved with ``find_powershell()`` when
        ``None``.
    listen_address:
        Host address the rules listen on.
    runner:
        Coroutine used to execute commands. Injected by tests.
    """

    def __init__(
        self,
        powershell: str | None = None,
        listen_address: str | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._powershell = powershell or find_powershell()
        self._listen_address = listen_address or PortProxyConfig().listen_address
        self._runner = runner

    @property
    def powershell(self) -> str:
        return self._powershell

    async def delete_rule(self, listen_port: int) -> None:
        await self._run(
            "netsh interface portproxy delete v4tov4 "
            f"listenport={listen_port} listenaddress={self._listen_address}"
        )

    async def add_rule(
        self,
        listen_port: int,
        connect_address: ipaddress.IPv4Address,
        connect_port: int,
    ) -> None:
        # Validate before it is interpolated into a PowerShell command line
        address = ipaddress.IPv4Address(connect_address)
        await self._run(
            "netsh interface portproxy add v4tov4 "
            f"listenport={listen_port} listenaddress={self._listen_address} "
            f"connectport={connect_port} connectaddress={address}"
        )

    async def show_rules(self) -> str:
        result = await self._run("netsh interface portproxy show v4tov4")
        return result.stdout.decode("utf-8", errors="replace")

    async def _run(self, command: str) -> CommandResult:
        logger.debug("Running: %s", command)
        try:
            result = await self._runner(
                self._powershell,
                "-NoProfile",
                "-NonInteractive",
                "-Command",
                command,
            )
        except OSError as exc:
            raise CommandFailedError(command) from exc

        if not result.ok:
            raise CommandFailedError(command, result.returncode, result.stderr_text())
        return result


def create_portproxy_ops(config: PortProxyConfig | None = None) -> PortProxyOperations:
    """Factory: build the portproxy backend from settings."""
    config = config or PortProxyConfig()
    return NetshPortProxyOps(
        powershell=find_powershell(config.powershell_candidates),
        listen_address=config.listen_address,
    )
