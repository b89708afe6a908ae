"""PagerTree incident alerting for the IB Gateway health monitor.

This module raises and clears PagerTree incidents through an integration
endpoint:
- Create an incident when the gateway goes down
- Resolve the same incident when the gateway comes back

Provider failures are raised as AlertingError, never as connectivity errors,
so a PagerTree outage is not mistaken for a gateway outage.

Usage:
    from packages.alerting import AlertConfig, IncidentTracker, PagerTreeClient

    tracker = IncidentTracker(PagerTreeClient(AlertConfig.from_env()))

    incident = await tracker.open("int_xxx", "IB is down", "Connection refused")
    ...
    await tracker.resolve(incident)
"""

import asyncio
import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol
from urllib import request
from urllib.error import URLError

import structlog

__all__ = [
    "AlertConfig",
    "AlertingError",
    "AlertingProvider",
    "Incident",
    "IncidentTracker",
    "PagerTreeClient",
]


logger = structlog.get_logger(__name__)


class AlertingError(Exception):
    """Raised when the alerting provider rejects or fails a request."""


@dataclass
class AlertConfig:
    """Alerting provider configuration."""

    base_url: str = "https://api.pagertree.com"
    request_timeout: float = 10.0
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "AlertConfig":
        """Load alert configuration from environment variables.

        Env vars:
            PAGERTREE_BASE_URL: PagerTree API base URL
            PAGERTREE_TIMEOUT: HTTP timeout in seconds

        Returns:
            AlertConfig instance
        """
        return cls(
            base_url=os.getenv("PAGERTREE_BASE_URL", "https://api.pagertree.com"),
            request_timeout=float(os.getenv("PAGERTREE_TIMEOUT", "10")),
        )


@dataclass
class Incident:
    """An incident raised with the alerting provider."""

    integration_id: str
    title: str
    detail: str
    incident_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    opened_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        """Check if the incident has not been resolved yet."""
        return self.resolved_at is None


class AlertingProvider(Protocol):
    """Create/resolve operations of an alerting service."""

    async def create_incident(self, incident: Incident) -> None:
        ...

    async def resolve_incident(self, incident: Incident) -> None:
        ...


class PagerTreeClient:
    """Sends incident events to a PagerTree integration."""

    def __init__(self, config: Optional[AlertConfig] = None):
        self.config = config or AlertConfig()

    async def create_incident(self, incident: Incident) -> None:
        """Create the incident in PagerTree.

        Raises:
            AlertingError: If PagerTree rejects the event or is unreachable
        """
        await self._send(incident.integration_id, {
            "event_type": "create",
            "Id": incident.incident_id,
            "Title": incident.title,
            "Description": incident.detail,
        })

    async def resolve_incident(self, incident: Incident) -> None:
        """Resolve the incident in PagerTree.

        Raises:
            AlertingError: If PagerTree rejects the event or is unreachable
        """
        await self._send(incident.integration_id, {
            "event_type": "resolve",
            "Id": incident.incident_id,
        })

    async def _send(self, integration_id: str, payload: dict) -> None:
        # Blocking urllib call runs in a worker thread
        await asyncio.to_thread(self._post, integration_id, payload)

    def _post(self, integration_id: str, payload: dict) -> None:
        """Post an event to the integration endpoint.

        Args:
            integration_id: PagerTree integration ID
            payload: Event body

        Raises:
            AlertingError: If the request fails
        """
        url = f"{self.config.base_url.rstrip('/')}/integration/{integration_id}"
        data = json.dumps(payload).encode("utf-8")
        req = request.Request(
            url,
            data=data,
            headers={
                "Content-Type": "application/json",
                **self.config.headers,
            },
            method="POST",
        )

        try:
            with request.urlopen(req, timeout=self.config.request_timeout) as response:
                if response.status >= 400:
                    raise AlertingError(f"PagerTree returned {response.status}")
        except (URLError, OSError) as e:
            raise AlertingError(f"PagerTree request failed: {e}") from e


class IncidentTracker:
    """Opens and resolves incidents against an alerting provider.

    The caller owns the returned Incident and decides when to resolve it.
    """

    def __init__(self, provider: Optional[AlertingProvider] = None):
        self.provider = provider or PagerTreeClient(AlertConfig.from_env())

    async def open(self, integration_id: str, title: str, detail: str) -> Incident:
        """Raise a new incident.

        Args:
            integration_id: Alert destination
            title: Short incident title
            detail: Incident description

        Returns:
            The created incident

        Raises:
            AlertingError: If the provider call fails
        """
        incident = Incident(integration_id=integration_id, title=title, detail=detail)
        await self.provider.create_incident(incident)
        logger.info(
            "incident_created",
            incident_id=incident.incident_id,
            title=title,
        )
        return incident

    async def resolve(self, incident: Incident) -> None:
        """Resolve an open incident.

        Raises:
            AlertingError: If the provider call fails (incident stays open)
        """
        await self.provider.resolve_incident(incident)
        incident.resolved_at = datetime.now(tz=timezone.utc)
        logger.info(
            "incident_resolved",
            incident_id=incident.incident_id,
            duration_seconds=round((incident.resolved_at - incident.opened_at).total_seconds(), 1),
        )
