"""Integration tests for the one-shot command pipeline.

A real registry file (in tmp_path), real synchronizer and a recording
portproxy backend are used; only discovery and guest resolution are mocked.
"""

from __future__ import annotations

import ipaddress
import pathlib
from unittest.mock import AsyncMock

import pytest
import yaml

from tests.conftest import RecordingPortProxyOps
from wsl_port_forwarder import state
from wsl_port_forwarder.app import PortForwarder, StatusReport
from wsl_port_forwarder.config import Settings
from wsl_port_forwarder.errors import (
    CommandFailedError,
    GuestAddressError,
    InvalidPortError,
    StateFileError,
)
from wsl_port_forwarder.models import PortsConfig
from wsl_port_forwarder.network.port_forward import RuleSynchronizer
from wsl_port_forwarder.scanner.detect import DetectedPorts

GUEST = ipaddress.IPv4Address("172.28.160.5")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def detector() -> AsyncMock:
    mock = AsyncMock()
    mock.detect = AsyncMock(return_value=DetectedPorts(pm2=set(), caddy=set()))
    return mock


@pytest.fixture
def guest_resolver() -> AsyncMock:
    mock = AsyncMock()
    mock.resolve = AsyncMock(return_value=GUEST)
    return mock


@pytest.fixture
def forwarder(
    state_path: pathlib.Path,
    detector: AsyncMock,
    guest_resolver: AsyncMock,
    portproxy_ops: RecordingPortProxyOps,
) -> PortForwarder:
    return PortForwarder(
        state_path=state_path,
        detector=detector,
        guest_resolver=guest_resolver,
        synchronizer=RuleSynchronizer(portproxy_ops),
    )


def _read_state(path: pathlib.Path) -> dict:
    return yaml.safe_load(path.read_text())


# ---------------------------------------------------------------------------
# add
# ---------------------------------------------------------------------------


class TestAdd:
    async def test_fresh_add_persists_and_forwards(
        self,
        forwarder: PortForwarder,
        state_path: pathlib.Path,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        """No state file, add 9000, nothing discovered."""
        assert not state_path.exists()

        inserted = await forwarder.add(9000)

        assert inserted is True
        assert _read_state(state_path) == {
            "manual_ports": [9000],
            "pm2_ports": [],
            "caddy_ports": [],
        }
        assert portproxy_ops.calls == [
            ("delete", 9000),
            ("add", 9000, "172.28.160.5", 9000),
        ]

    async def test_re_adding_still_syncs(
        self,
        forwarder: PortForwarder,
        state_path: pathlib.Path,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        state.save(state_path, PortsConfig(manual_ports={9000}))

        inserted = await forwarder.add(9000)

        assert inserted is False
        assert ("add", 9000, "172.28.160.5", 9000) in portproxy_ops.calls

    async def test_discovered_ports_are_merged_and_sorted(
        self,
        forwarder: PortForwarder,
        detector: AsyncMock,
        state_path: pathlib.Path,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        detector.detect.return_value = DetectedPorts(pm2={5173, 3000}, caddy={443})

        await forwarder.add(9000)

        assert _read_state(state_path) == {
            "manual_ports": [9000],
            "pm2_ports": [3000, 5173],
            "caddy_ports": [443],
        }
        added = [c[1] for c in portproxy_ops.calls if c[0] == "add"]
        assert added == [443, 3000, 5173, 9000]

    async def test_zero_port_rejected_before_any_io(
        self,
        forwarder: PortForwarder,
        detector: AsyncMock,
        guest_resolver: AsyncMock,
        state_path: pathlib.Path,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        with pytest.raises(InvalidPortError):
            await forwarder.add(0)

        detector.detect.assert_not_awaited()
        guest_resolver.resolve.assert_not_awaited()
        assert not state_path.exists()
        assert portproxy_ops.calls == []

    async def test_add_failure_propagates_after_persisting(
        self,
        state_path: pathlib.Path,
        detector: AsyncMock,
        guest_resolver: AsyncMock,
    ) -> None:
        ops = RecordingPortProxyOps(fail_add={9000})
        forwarder = PortForwarder(state_path, detector, guest_resolver, RuleSynchronizer(ops))

        with pytest.raises(CommandFailedError):
            await forwarder.add(9000)

        assert _read_state(state_path)["manual_ports"] == [9000]


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------


class TestRemove:
    async def test_remove_existing(
        self,
        forwarder: PortForwarder,
        state_path: pathlib.Path,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        state.save(state_path, PortsConfig(manual_ports={22, 9000}))

        removed = await forwarder.remove(9000)

        assert removed is True
        assert _read_state(state_path)["manual_ports"] == [22]
        assert [c[1] for c in portproxy_ops.calls if c[0] == "add"] == [22]

    async def test_remove_missing_still_syncs(
        self,
        forwarder: PortForwarder,
        portproxy_ops: RecordingPortProxyOps,
        detector: AsyncMock,
    ) -> None:
        detector.detect.return_value = DetectedPorts(pm2={3000}, caddy=set())

        removed = await forwarder.remove(9000)

        assert removed is False
        assert [c[1] for c in portproxy_ops.calls if c[0] == "add"] == [3000]

    async def test_zero_port_rejected(self, forwarder: PortForwarder) -> None:
        with pytest.raises(InvalidPortError):
            await forwarder.remove(0)


# ---------------------------------------------------------------------------
# sync / status
# ---------------------------------------------------------------------------


class TestSync:
    async def test_stale_discoveries_are_retired(
        self,
        forwarder: PortForwarder,
        detector: AsyncMock,
        state_path: pathlib.Path,
    ) -> None:
        state.save(state_path, PortsConfig(manual_ports={22}, pm2_ports={3000}, caddy_ports={443}))
        detector.detect.return_value = DetectedPorts(pm2=set(), caddy=set())

        await forwarder.sync()

        assert _read_state(state_path) == {
            "manual_ports": [22],
            "pm2_ports": [],
            "caddy_ports": [],
        }

    async def test_guest_failure_is_fatal(
        self,
        forwarder: PortForwarder,
        guest_resolver: AsyncMock,
        portproxy_ops: RecordingPortProxyOps,
    ) -> None:
        guest_resolver.resolve.side_effect = GuestAddressError("could not parse IPv4")

        with pytest.raises(GuestAddressError):
            await forwarder.sync()
        assert portproxy_ops.calls == []

    async def test_malformed_state_is_fatal(
        self,
        forwarder: PortForwarder,
        detector: AsyncMock,
        state_path: pathlib.Path,
    ) -> None:
        state_path.parent.mkdir(parents=True)
        state_path.write_text("manual_ports: {oops")

        with pytest.raises(StateFileError):
            await forwarder.sync()
        detector.detect.assert_not_awaited()
        assert state_path.read_text() == "manual_ports: {oops"


class TestStatus:
    async def test_status_report(
        self,
        state_path: pathlib.Path,
        detector: AsyncMock,
        guest_resolver: AsyncMock,
    ) -> None:
        ops = RecordingPortProxyOps(rules_text="0.0.0.0 3000 172.28.160.5 3000")
        forwarder = PortForwarder(state_path, detector, guest_resolver, RuleSynchronizer(ops))
        state.save(state_path, PortsConfig(manual_ports={3000}))
        detector.detect.return_value = DetectedPorts(pm2={5173}, caddy=set())

        report = await forwarder.status()

        assert isinstance(report, StatusReport)
        assert report.guest_ip == GUEST
        assert report.state_path == state_path
        assert report.ports.all_ports() == {3000, 5173}
        assert report.rules == "0.0.0.0 3000 172.28.160.5 3000"
        # status persists discoveries but never changes rules
        assert _read_state(state_path)["pm2_ports"] == [5173]
        assert ops.calls == [("show",)]


class TestFromSettings:
    def test_wires_configured_state_path(self, tmp_path: pathlib.Path) -> None:
        settings = Settings(state={"path": str(tmp_path / "ports.yaml")})
        forwarder = PortForwarder.from_settings(settings)
        assert forwarder.state_path == tmp_path / "ports.yaml"
        assert isinstance(forwarder.synchronizer, RuleSynchronizer)
