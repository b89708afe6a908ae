"""
IBKR Gateway Connection Handle.

Wraps a single session with Interactive Brokers Gateway/TWS behind a small
contract the health monitor relies on:
- Connect (or verify an existing session) within a deadline
- Probe the session with an application-level request
- Idempotent disconnect

Any failure while connecting tears the session down before the error is
raised, so callers never inherit a half-open session.
"""

import asyncio
from enum import Enum
from typing import Optional, Protocol, runtime_checkable
import structlog
from ib_insync import IB


logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    """Connection state enumeration."""
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"


class ConnectionFailure(Exception):
    """
    Gateway could not be reached or did not respond.

    Umbrella classification for resolution, connect and probe errors. The
    message is the diagnostic shown to operators.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


@runtime_checkable
class ConnectionHandle(Protocol):
    """Capabilities the health monitor needs from a gateway session."""

    async def connect_with_timeout(self, timeout: float) -> None:
        """Establish or verify the session; raise TimeoutError past the deadline."""
        ...

    async def probe(self, timeout: float) -> None:
        """Round trip to the gateway; raise on any failure."""
        ...

    def disconnect(self) -> None:
        """Close the session. Safe to call when not connected."""
        ...

    def is_connected(self) -> bool:
        """Check if the session is connected."""
        ...


class IBGatewayConnection:
    """
    Connection handle backed by ib_insync.

    Bound to one resolved address; the monitor builds a new instance whenever
    it has to reconnect from scratch.
    """

    def __init__(self, address: str, port: int, client_id: int, ib: Optional[IB] = None):
        """
        Initialize connection handle.

        Args:
            address: Resolved gateway address
            port: Gateway port
            client_id: Client ID to connect as
            ib: IB instance to use (creates one if None)
        """
        self.address = address
        self.port = port
        self.client_id = client_id
        self.ib = ib or IB()

        self.ib.disconnectedEvent += self._on_disconnected
        self.ib.errorEvent += self._on_error

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return ConnectionState.CONNECTED if self.is_connected() else ConnectionState.UNCONNECTED

    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self.ib.isConnected()

    async def connect_with_timeout(self, timeout: float) -> None:
        """
        Ensure the session is connected.

        Args:
            timeout: Seconds to wait for the session to come up

        Raises:
            TimeoutError: If the session is not up before the deadline
            asyncio.CancelledError: If the awaiting task is cancelled
        """
        if self.is_connected():
            return

        logger.info(
            "connecting_to_ibkr",
            address=self.address,
            port=self.port,
            client_id=self.client_id,
            timeout=timeout,
        )

        try:
            await asyncio.wait_for(
                self.ib.connectAsync(
                    host=self.address,
                    port=self.port,
                    clientId=self.client_id,
                    timeout=timeout,
                    readonly=True,
                ),
                timeout,
            )
        except asyncio.TimeoutError as e:
            self._teardown()
            raise TimeoutError("Connection timed out") from e
        except BaseException:
            self._teardown()
            raise

        logger.info("connected_to_ibkr", address=self.address, port=self.port)

    async def probe(self, timeout: float) -> None:
        """
        Request current positions from the gateway.

        Succeeds only if the gateway application answers, not merely the socket.

        Args:
            timeout: Seconds to wait for the response

        Raises:
            TimeoutError: If no response arrives before the deadline
            ConnectionError: If the session is not connected
        """
        if not self.is_connected():
            raise ConnectionError("Not connected to IBKR")

        try:
            positions = await asyncio.wait_for(self.ib.reqPositionsAsync(), timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError("Positions request timed out") from e

        logger.debug("probe_succeeded", positions=len(positions))

    def disconnect(self) -> None:
        """Disconnect from IBKR."""
        if not self.is_connected():
            return

        logger.info("disconnecting_from_ibkr", address=self.address, port=self.port)
        self.ib.disconnect()

    def _teardown(self):
        """Drop a session that failed mid-handshake."""
        # isConnected() is still False while the handshake is in flight
        self.ib.disconnect()

    def _on_disconnected(self):
        """Handle disconnected event."""
        logger.warning("ibkr_disconnected_event", address=self.address, port=self.port)

    def _on_error(self, reqId, errorCode, errorString, contract):
        """Handle error event."""
        logger.error(
            "ibkr_error_event",
            req_id=reqId,
            error_code=errorCode,
            error_string=errorString,
            contract=str(contract) if contract else None,
        )


__all__ = [
    "ConnectionState",
    "ConnectionFailure",
    "ConnectionHandle",
    "IBGatewayConnection",
]
