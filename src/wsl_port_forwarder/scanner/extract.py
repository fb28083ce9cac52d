"""Pull plausible TCP ports out of arbitrary JSON documents.

Both discovery sources (``pm2 jlist`` and the Caddy admin config) return
loosely-shaped JSON. Rather than modelling either schema, the document is
walked recursively and ports are collected from:

* integer values under ``port`` / ``listen_port`` keys (any case), and
* address-like strings (``":8080"``, ``"0.0.0.0:3000/"``), under
  ``listen`` / ``address`` keys or anywhere else in the tree.

The string heuristic accepts false positives (a timestamp such as
``"12:30"`` yields 30); discovery is best-effort.
"""

from __future__ import annotations

import re
from typing import Any

from wsl_port_forwarder.models import is_valid_port

PORT_KEYS = frozenset({"port", "listen_port"})
ADDRESS_KEYS = frozenset({"listen", "address"})

_DECIMAL = re.compile(r"[0-9]+")


def _parse_port(text: str) -> int | None:
    if not _DECIMAL.fullmatch(text):
        return None
    value = int(text)
    return value if is_valid_port(value) else None


def extract_ports_from_string(text: str) -> list[int]:
    """Return the port embedded in an address-like string, if any.

    ``":<port>"`` wins outright. Otherwise the text after the last colon,
    minus trailing slashes, is tried.
    """
    if text.startswith(":"):
        port = _parse_port(text[1:])
        if port is not None:
            return [port]

    idx = text.rfind(":")
    if idx == -1:
        return []
    port = _parse_port(text[idx + 1 :].rstrip("/"))
    return [port] if port is not None else []


def _port_from_number(value: Any) -> int | None:
    # bool is an int subclass; JSON true/false is not a port
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if is_valid_port(value) else None


def _collect(value: Any, out: set[int]) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            name = str(key).lower()
            if name in PORT_KEYS:
                port = _port_from_number(item)
                if port is not None:
                    out.add(port)
            if name in ADDRESS_KEYS and isinstance(item, str):
                out.update(extract_ports_from_string(item))
            _collect(item, out)
    elif isinstance(value, list):
        for item in value:
            _collect(item, out)
    elif isinstance(value, str):
        out.update(extract_ports_from_string(value))


def extract_ports(value: Any) -> set[int]:
    """Collect every port found in a parsed JSON value. Never raises."""
    ports: set[int] = set()
    _collect(value, ports)
    return ports
