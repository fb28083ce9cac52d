"""Resolve the WSL guest's current IPv4 address."""

from __future__ import annotations

import ipaddress
import logging
from typing import Sequence

from wsl_port_forwarder.config import GuestConfig
from wsl_port_forwarder.errors import GuestAddressError
from wsl_port_forwarder.process import CommandRunner, run_command

logger = logging.getLogger(__name__)


def first_ipv4(text: str) -> ipaddress.IPv4Address | None:
    """Return the first whitespace-separated token that parses as IPv4."""
    for token in text.split():
        try:
            return ipaddress.IPv4Address(token)
        except ValueError:
            continue
    return None


class GuestAddressResolver:
    """Runs *command* (``hostname -I`` by default) and picks the first IPv4."""

    def __init__(
        self,
        command: Sequence[str] | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        self._command = list(command or GuestConfig().command)
        self._runner = runner

    async def resolve(self) -> ipaddress.IPv4Address:
        label = " ".join(self._command)
        try:
            result = await self._runner(*self._command)
        except OSError as exc:
            raise GuestAddressError(f"failed to run {label}: {exc}") from exc

        if not result.ok:
            raise GuestAddressError(
                f"{label} failed with exit status {result.returncode}: {result.stderr_text()}"
            )

        address = first_ipv4(result.stdout.decode("utf-8", errors="replace"))
        if address is None:
            raise GuestAddressError(f"could not parse IPv4 from {label} output")
        logger.debug("Guest address resolved to %s", address)
        return address
