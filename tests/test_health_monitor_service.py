"""Tests for the background HealthMonitorService."""

import threading
import time

import pytest

from packages.address_resolver import AddressResolver
from packages.alerting import IncidentTracker
from packages.console_output import ConsoleSink
from packages.gateway_config import MonitorConfig
from packages.health_monitor import ACTIVE_NOTICE, GatewayHealthMonitor, HealthMonitorService, MonitorState

from tests.fakes import FakeGateway, RecordingConsole


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def console():
    return RecordingConsole()


@pytest.fixture
def monitor(gateway, console):
    config = MonitorConfig(host="127.0.0.1", cycle_interval=0.01)
    return GatewayHealthMonitor(
        config,
        resolver=AddressResolver(),
        handle_factory=gateway.factory,
        tracker=IncidentTracker(provider=None),
        console=console,
    )


def test_service_starts_on_construction(monitor, console):
    """Monitoring begins without an explicit start call."""
    service = HealthMonitorService(monitor.config, monitor=monitor)
    try:
        assert service.running
        assert wait_until(lambda: monitor.cycles >= 2)
        assert console.lines == [ACTIVE_NOTICE]
    finally:
        service.stop()


def test_stop_blocks_until_unwound(monitor, gateway):
    """stop() returns only after the monitor disconnected and exited."""
    service = HealthMonitorService(monitor.config, monitor=monitor)
    assert wait_until(lambda: monitor.cycles >= 1)

    service.stop()

    assert not service.running
    assert monitor.state is MonitorState.STOPPED
    assert monitor.handle is None
    assert gateway.handles[0].disconnect_calls == 1


def test_stop_is_idempotent(monitor):
    """A second stop() is a no-op."""
    service = HealthMonitorService(monitor.config, monitor=monitor)
    service.stop()
    service.stop()

    assert not service.running


def test_context_manager_stops(monitor):
    """Leaving the with-block stops the monitor."""
    with HealthMonitorService(monitor.config, monitor=monitor) as service:
        assert wait_until(lambda: monitor.cycles >= 1)

    assert not service.running
    assert monitor.state is MonitorState.STOPPED


def test_stop_during_long_wait_is_prompt(gateway, console):
    """Stopping does not wait out the cycle interval."""
    config = MonitorConfig(host="127.0.0.1", cycle_interval=3600)
    monitor = GatewayHealthMonitor(
        config,
        handle_factory=gateway.factory,
        tracker=IncidentTracker(provider=None),
        console=console,
    )
    service = HealthMonitorService(config, monitor=monitor)
    assert wait_until(lambda: monitor.cycles == 1 and console.lines)

    started = time.monotonic()
    service.stop()

    assert time.monotonic() - started < 1.0
    assert not service.running


class BlockedStream:
    """Stream whose write blocks until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def write(self, text):
        self.entered.set()
        self.release.wait()

    def flush(self):
        pass


def test_stop_not_held_by_blocked_console_write(gateway):
    """A notice write stuck on its stream does not hold up stop()."""
    stream = BlockedStream()
    config = MonitorConfig(host="127.0.0.1", cycle_interval=0.01)
    monitor = GatewayHealthMonitor(
        config,
        handle_factory=gateway.factory,
        tracker=IncidentTracker(provider=None),
        console=ConsoleSink(out=stream, err=stream),
    )
    service = HealthMonitorService(config, monitor=monitor)
    try:
        assert stream.entered.wait(2)

        started = time.monotonic()
        service.stop(timeout=5)

        assert time.monotonic() - started < 2.0
        assert not service.running
        assert monitor.state is MonitorState.STOPPED
    finally:
        stream.release.set()
