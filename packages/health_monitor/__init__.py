"""
IB Gateway health monitoring: the check loop and its background runner.
"""

from .monitor import (
    ACTIVE_NOTICE,
    CONNECT_TIMEOUT_MESSAGE,
    CREATED_NOTICE,
    INCIDENT_TITLE,
    PROBE_TIMEOUT_MESSAGE,
    RESOLVED_NOTICE,
    GatewayHealthMonitor,
    HandleFactory,
    MonitorState,
)
from .service import HealthMonitorService

__all__ = [
    "ACTIVE_NOTICE",
    "CONNECT_TIMEOUT_MESSAGE",
    "CREATED_NOTICE",
    "INCIDENT_TITLE",
    "PROBE_TIMEOUT_MESSAGE",
    "RESOLVED_NOTICE",
    "GatewayHealthMonitor",
    "HandleFactory",
    "MonitorState",
    "HealthMonitorService",
]
