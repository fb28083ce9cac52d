"""Pydantic domain models for the port forwarder.

``PortsConfig`` is the desired-state registry: the operator's manual ports
plus the two most recently discovered port sets.
"""

from __future__ import annotations

from typing import Annotated, Iterable

from pydantic import BaseModel, Field, StrictInt

from wsl_port_forwarder.errors import InvalidPortError

MIN_PORT = 1
MAX_PORT = 65535

# Strict so YAML strings, booleans and floats are rejected, not coerced
Port = Annotated[StrictInt, Field(ge=MIN_PORT, le=MAX_PORT)]


def is_valid_port(value: int) -> bool:
    return MIN_PORT <= value <= MAX_PORT


def validate_port(port: int) -> int:
    """Return *port* unchanged or raise ``InvalidPortError``."""
    if not is_valid_port(port):
        raise InvalidPortError(port)
    return port


class PortsConfig(BaseModel):
    """Manual and discovered port sets.

    The sets may overlap. Discovered sets are replaced wholesale on every
    detection run so ports a source stops reporting are retired.
    """

    manual_ports: set[Port] = Field(default_factory=set)
    pm2_ports: set[Port] = Field(default_factory=set)
    caddy_ports: set[Port] = Field(default_factory=set)

    def all_ports(self) -> set[int]:
        return self.manual_ports | self.pm2_ports | self.caddy_ports

    def add_manual_port(self, port: int) -> bool:
        """Add a manual port. Returns True if it was not already present."""
        if port in self.manual_ports:
            return False
        self.manual_ports.add(port)
        return True

    def remove_manual_port(self, port: int) -> bool:
        """Remove a manual port. Returns True if it was present."""
        if port not in self.manual_ports:
            return False
        self.manual_ports.discard(port)
        return True

    def set_detected_ports(
        self, pm2_ports: Iterable[int], caddy_ports: Iterable[int]
    ) -> None:
        self.pm2_ports = set(pm2_ports)
        self.caddy_ports = set(caddy_ports)

    def to_document(self) -> dict[str, list[int]]:
        """Serializable form with ports in ascending order."""
        return {
            "manual_ports": sorted(self.manual_ports),
            "pm2_ports": sorted(self.pm2_ports),
            "caddy_ports": sorted(self.caddy_ports),
        }
