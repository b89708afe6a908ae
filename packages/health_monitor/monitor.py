"""
Gateway health monitoring loop.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

import structlog

from packages.address_resolver import AddressResolver, ResolutionError
from packages.alerting import AlertingError, Incident, IncidentTracker
from packages.console_output import ConsoleSink
from packages.gateway_config import MonitorConfig
from packages.ibkr_connection import ConnectionFailure, ConnectionHandle, IBGatewayConnection
from packages.structured_logging import bind_gateway


logger = structlog.get_logger(__name__)

HandleFactory = Callable[[str, int, int], ConnectionHandle]

INCIDENT_TITLE = "IB is down"
ACTIVE_NOTICE = "Connection to IB is active"
RESOLVED_NOTICE = "Resolved PagerTree incident"
CREATED_NOTICE = "Created PagerTree incident"
CONNECT_TIMEOUT_MESSAGE = "Timed out waiting for connection to establish"
PROBE_TIMEOUT_MESSAGE = "Timed out waiting for response from gateway"


class MonitorState(Enum):
    """Health monitor state."""

    NO_HANDLE = "no_handle"
    PROBING = "probing"
    HEALTHY = "healthy"
    FAILING = "failing"
    STOPPED = "stopped"


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class GatewayHealthMonitor:
    """
    Continuously checks that an IB Gateway session is alive.

    Each cycle connects (building a fresh connection from a fresh address
    lookup when needed), probes the gateway, and raises or resolves a
    PagerTree incident on state transitions. Any failure throws the
    connection away so the next cycle starts clean.

    Only the task running run() touches the connection and the incident.
    """

    def __init__(
        self,
        config: MonitorConfig,
        resolver: Optional[AddressResolver] = None,
        handle_factory: Optional[HandleFactory] = None,
        tracker: Optional[IncidentTracker] = None,
        console: Optional[ConsoleSink] = None,
    ):
        """
        Initialize health monitor.

        Args:
            config: Validated monitor configuration
            resolver: Address resolver (DNS-backed if None)
            handle_factory: Builds a connection for (address, port, client_id)
            tracker: Incident tracker (PagerTree if None)
            console: Sink for operator notices (stdout/stderr if None)
        """
        self.config = config
        self.resolver = resolver or AddressResolver()
        self.handle_factory = handle_factory or IBGatewayConnection
        self.tracker = tracker or IncidentTracker()
        self.console = console or ConsoleSink()

        self.state = MonitorState.NO_HANDLE
        self.handle: Optional[ConnectionHandle] = None
        self.incident: Optional[Incident] = None
        self.cycles = 0
        self.last_failure: Optional[str] = None

    async def run(self) -> None:
        """
        Run health checks until cancelled.

        Raises:
            asyncio.CancelledError: When the monitor is stopped
        """
        bind_gateway(self.config.host, self.config.port, self.config.client_id)
        logger.info("health_monitor_started", **self.config.to_dict())

        try:
            while True:
                try:
                    await self.run_cycle()
                except Exception:
                    # Errors outside the gateway check never end the loop
                    logger.exception("health_cycle_error", cycle=self.cycles)

                await asyncio.sleep(self.config.cycle_interval)
        finally:
            self._discard_handle()
            self.state = MonitorState.STOPPED
            logger.info("health_monitor_stopped", cycles=self.cycles)

    async def run_cycle(self) -> bool:
        """
        Perform one connect/probe/classify cycle.

        Returns:
            True if the gateway is healthy
        """
        self.cycles += 1
        was_healthy = self.state is MonitorState.HEALTHY

        try:
            await self._check_connection()
        except ConnectionFailure as failure:
            await self._on_failure(failure)
            return False

        await self._on_success(was_healthy)
        return True

    def get_status(self) -> dict:
        """
        Get monitor status details.

        Returns:
            Status dictionary with state and incident info
        """
        return {
            "state": self.state.value,
            "connected": self.handle is not None and self.handle.is_connected(),
            "cycles": self.cycles,
            "last_failure": self.last_failure,
            "incident_open": self.incident is not None,
            "incident_id": self.incident.incident_id if self.incident else None,
        }

    async def _open_handle(self) -> ConnectionHandle:
        try:
            address = await self.resolver.resolve(self.config.host)
        except ResolutionError as e:
            raise ConnectionFailure(str(e), e) from e
        except Exception as e:
            raise ConnectionFailure(
                f"Unable to resolve host {self.config.host}: {_describe(e)}", e
            ) from e

        try:
            handle = self.handle_factory(address, self.config.port, self.config.client_id)
        except Exception as e:
            raise ConnectionFailure(f"Unable to create connection to {address}: {_describe(e)}", e) from e

        logger.debug("connection_created", address=address)
        return handle

    async def _check_connection(self) -> None:
        """
        Connect if needed and probe the gateway.

        Raises:
            ConnectionFailure: If the gateway is unreachable or unresponsive
        """
        if self.handle is None:
            self.handle = await self._open_handle()

        self.state = MonitorState.PROBING
        handle = self.handle

        try:
            await handle.connect_with_timeout(self.config.connect_timeout)
        except ConnectionFailure:
            raise
        except TimeoutError as e:
            raise ConnectionFailure(CONNECT_TIMEOUT_MESSAGE, e) from e
        except Exception as e:
            raise ConnectionFailure(_describe(e), e) from e

        try:
            await handle.probe(self.config.connect_timeout)
        except ConnectionFailure:
            raise
        except TimeoutError as e:
            raise ConnectionFailure(PROBE_TIMEOUT_MESSAGE, e) from e
        except Exception as e:
            raise ConnectionFailure(_describe(e), e) from e

    async def _on_success(self, was_healthy: bool) -> None:
        # State turns HEALTHY only after the notices are written
        if self.incident is not None:
            try:
                await self.tracker.resolve(self.incident)
            except AlertingError as e:
                # Still tracked; retried on the next healthy cycle
                logger.error(
                    "incident_resolve_failed",
                    incident_id=self.incident.incident_id,
                    error=str(e),
                )
            else:
                self.incident = None
                await self.console.write_line(RESOLVED_NOTICE)

        if not was_healthy:
            logger.info("gateway_healthy", cycle=self.cycles)
            await self.console.write_line(ACTIVE_NOTICE)

        self.state = MonitorState.HEALTHY

    async def _on_failure(self, failure: ConnectionFailure) -> None:
        self.state = MonitorState.FAILING
        self.last_failure = failure.message
        self._discard_handle()

        logger.warning("gateway_check_failed", error=failure.message, cycle=self.cycles)

        if self.incident is None and self.config.alerting_enabled:
            try:
                self.incident = await self.tracker.open(
                    self.config.pagertree_integration_id,
                    INCIDENT_TITLE,
                    failure.message,
                )
            except AlertingError as e:
                logger.error("incident_create_failed", error=str(e))
            else:
                await self.console.write_error_line(CREATED_NOTICE)

        await self.console.write_error_line(failure.message)

    def _discard_handle(self) -> None:
        handle, self.handle = self.handle, None
        if handle is None:
            return

        try:
            if handle.is_connected():
                handle.disconnect()
        except Exception as e:
            logger.warning("disconnect_failed", error=_describe(e))
