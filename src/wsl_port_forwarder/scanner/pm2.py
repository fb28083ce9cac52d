"""PM2 process manager probe.

Runs ``pm2 jlist`` and extracts ports from the process list (``env.PORT``
style values, ``--port`` args rendered as strings, and so on).
"""

from __future__ import annotations

import json
import logging

from wsl_port_forwarder.config import PM2Config
from wsl_port_forwarder.errors import DiscoveryError
from wsl_port_forwarder.process import CommandRunner, run_command
from wsl_port_forwarder.scanner.extract import extract_ports

logger = logging.getLogger(__name__)


class PM2Probe:
    """Discover ports from PM2-managed processes.

    Parameters
    ----------
    command:
        Argument vector that prints the process list as JSON.
    runner:
        Coroutine used to execute *command*. Injected by tests.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._command = list(command or PM2Config().command)
        self._runner = runner

    async def probe(self) -> set[int]:
        """Return discovered ports, or an empty set if PM2 is unavailable."""
        try:
            return await self._detect()
        except (OSError, ValueError, DiscoveryError) as exc:
            logger.debug("pm2 detection failed: %s", exc)
            return set()

    async def _detect(self) -> set[int]:
        result = await self._runner(*self._command)
        if not result.ok:
            raise DiscoveryError(
                f"{' '.join(self._command)} exited with {result.returncode}"
            )
        # json.JSONDecodeError and UnicodeDecodeError are both ValueErrors
        document = json.loads(result.stdout)
        ports = extract_ports(document)
        logger.debug("pm2 reported ports %s", sorted(ports))
        return ports
