"""WSL Port Forwarder -- entry point.

Usage::

    wsl-port [--config PATH] [-v] {status,add,remove,sync,daemon} ...

Every command:
    1. Loads settings (YAML + WSLPORT_* environment overrides)
    2. Loads the port registry and refreshes PM2 / Caddy discovered ports
    3. Persists the registry
    4. Resolves the WSL guest IP and (except ``status``) syncs netsh rules
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from wsl_port_forwarder import __version__
from wsl_port_forwarder.app import PortForwarder, StatusReport
from wsl_port_forwarder.config import Settings, load_settings
from wsl_port_forwarder.daemon.loop import ReconcileLoop
from wsl_port_forwarder.errors import PortForwarderError
from wsl_port_forwarder.models import MAX_PORT, MIN_PORT

logger = logging.getLogger("wsl_port_forwarder")


# ---------------------------------------------------------------------------
# Integration seams -- module-level names so tests can patch them.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


def create_forwarder(settings: Settings) -> PortForwarder:
    return PortForwarder.from_settings(settings)


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def port_argument(value: str) -> int:
    """argparse type for a TCP port; rejects 0 before any I/O happens."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not MIN_PORT <= port <= MAX_PORT:
        raise argparse.ArgumentTypeError(
            f"port {port} is invalid (expected {MIN_PORT}-{MAX_PORT})"
        )
    return port


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="wsl-port",
        description="WSL to Windows portproxy auto-forwarder",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML settings file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show current IP, configured ports, and netsh mappings")
    add = sub.add_parser("add", help="Add a port to the manual config and sync immediately")
    add.add_argument("port", type=port_argument)
    remove = sub.add_parser("remove", help="Remove a port from the manual config and sync immediately")
    remove.add_argument("port", type=port_argument)
    sub.add_parser("sync", help="Force immediate re-sync of netsh rules")
    sub.add_parser("daemon", help="Run daemon loop and refresh rules on IP/config changes")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _format_ports(ports: set[int]) -> str:
    return ", ".join(str(p) for p in sorted(ports)) or "(none)"


def print_status(report: StatusReport) -> None:
    cfg = report.ports
    print(f"WSL IP: {report.guest_ip}")
    print(f"Config file: {report.state_path}")
    print(f"Manual ports: {_format_ports(cfg.manual_ports)}")
    print(f"PM2 ports: {_format_ports(cfg.pm2_ports)}")
    print(f"Caddy ports: {_format_ports(cfg.caddy_ports)}")
    print(f"All forwarded ports: {_format_ports(cfg.all_ports())}")
    print(f"\nCurrent netsh portproxy mappings:\n{report.rules}")


async def run_command(args: argparse.Namespace) -> None:
    """Dispatch a parsed command. Fatal errors propagate to ``main()``."""
    settings = load_config(args.config)
    forwarder = create_forwarder(settings)

    if args.command == "status":
        print_status(await forwarder.status())

    elif args.command == "add":
        if await forwarder.add(args.port):
            print(f"Added port {args.port} and synced rules.")
        else:
            print(f"Port {args.port} already present; synced rules anyway.")

    elif args.command == "remove":
        if await forwarder.remove(args.port):
            print(f"Removed port {args.port} and synced rules.")
        else:
            print(f"Port {args.port} was not in manual config; synced rules anyway.")

    elif args.command == "sync":
        await forwarder.sync()
        print("Sync complete.")

    elif args.command == "daemon":
        loop = ReconcileLoop(forwarder, poll_interval=settings.daemon.poll_interval)
        await loop.run()


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and run the requested command."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        asyncio.run(run_command(args))
    except PortForwarderError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
