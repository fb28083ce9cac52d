"""Shared test fixtures for WSL Port Forwarder tests."""

from __future__ import annotations

import ipaddress
import pathlib

import pytest

from wsl_port_forwarder.errors import CommandFailedError
from wsl_port_forwarder.privileged.helper import PortProxyOperations
from wsl_port_forwarder.process import CommandResult

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


def ok(stdout: bytes = b"") -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr=b"")


def failed(returncode: int = 1, stderr: bytes = b"boom") -> CommandResult:
    return CommandResult(returncode=returncode, stdout=b"", stderr=stderr)


class RecordingPortProxyOps(PortProxyOperations):
    """In-memory portproxy backend that records every call in order.

    ``fail_add`` / ``fail_delete`` name ports whose command should fail.
    By default every delete fails, matching netsh when no rule exists.
    """

    def __init__(
        self,
        fail_add: set[int] | None = None,
        fail_delete: set[int] | None = None,
        delete_always_fails: bool = True,
        rules_text: str = "",
    ) -> None:
        self.calls: list[tuple] = []
        self._fail_add = fail_add or set()
        self._fail_delete = fail_delete or set()
        self._delete_always_fails = delete_always_fails
        self._rules_text = rules_text

    async def delete_rule(self, listen_port: int) -> None:
        self.calls.append(("delete", listen_port))
        if self._delete_always_fails or listen_port in self._fail_delete:
            raise CommandFailedError(f"delete {listen_port}", 1, "The system cannot find the file specified.")

    async def add_rule(
        self,
        listen_port: int,
        connect_address: ipaddress.IPv4Address,
        connect_port: int,
    ) -> None:
        self.calls.append(("add", listen_port, str(connect_address), connect_port))
        if listen_port in self._fail_add:
            raise CommandFailedError(f"add {listen_port}", 1, "The requested operation requires elevation.")

    async def show_rules(self) -> str:
        self.calls.append(("show",))
        return self._rules_text


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def state_path(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "config" / "ports.yaml"


@pytest.fixture
def portproxy_ops() -> RecordingPortProxyOps:
    return RecordingPortProxyOps()
