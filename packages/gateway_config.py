"""
Gateway Health Monitor Configuration.

Connection and alerting settings for a single IB Gateway/TWS health monitor.
Values come from CLI flags, with environment variable and .env overrides.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7000
DEFAULT_CLIENT_ID = 987
DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_CYCLE_INTERVAL = 15.0


class MonitorConfig(BaseSettings):
    """
    Health monitor configuration from environment variables.

    Environment Variables:
        IBGW_HOST: Gateway/TWS host, literal IP or hostname (default: 127.0.0.1)
        IBGW_PORT: Gateway/TWS port (default: 7000)
        IBGW_CLIENT_ID: Client ID to connect as (default: 987)
        IBGW_PAGERTREE_INTEGRATION_ID: PagerTree integration to notify (default: none)
        IBGW_CONNECT_TIMEOUT: Connection timeout in seconds (default: 15)
        IBGW_CYCLE_INTERVAL: Wait between health checks in seconds (default: 15)

    The instance is frozen: a monitor keeps the same settings for its lifetime.

    Usage:
        config = MonitorConfig(host="gateway.internal", port=4001)
        print(f"Monitoring {config.get_connection_string()}")
    """

    model_config = SettingsConfigDict(
        env_prefix="IBGW_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Connection settings
    host: str = Field(default=DEFAULT_HOST, min_length=1, description="IB Gateway/TWS host")
    port: int = Field(default=DEFAULT_PORT, ge=0, description="IB Gateway/TWS port")
    client_id: int = Field(default=DEFAULT_CLIENT_ID, ge=0, description="Client ID to connect as")

    # Alerting
    pagertree_integration_id: Optional[str] = Field(
        default=None, description="PagerTree integration ID to notify when IB is unavailable"
    )

    # Cadence
    connect_timeout: float = Field(default=DEFAULT_CONNECT_TIMEOUT, gt=0, description="Connection timeout (seconds)")
    cycle_interval: float = Field(default=DEFAULT_CYCLE_INTERVAL, ge=0, description="Wait between checks (seconds)")

    @field_validator("host")
    @classmethod
    def _host_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("host must be provided")
        return value

    @field_validator("pagertree_integration_id")
    @classmethod
    def _empty_integration_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def alerting_enabled(self) -> bool:
        """Check if incidents should be raised on failure."""
        return self.pagertree_integration_id is not None

    def get_connection_string(self) -> str:
        """Get human-readable connection string."""
        return f"{self.host}:{self.port} (client {self.client_id})"

    def to_dict(self) -> dict:
        """Export config as dictionary (safe for logging)."""
        return {
            "host": self.host,
            "port": self.port,
            "client_id": self.client_id,
            "alerting_enabled": self.alerting_enabled,
            "connect_timeout": self.connect_timeout,
            "cycle_interval": self.cycle_interval,
        }


# Global config instance (singleton pattern)
_config_instance: MonitorConfig | None = None


def get_monitor_config(force_reload: bool = False) -> MonitorConfig:
    """
    Get global monitor configuration singleton.

    Args:
        force_reload: Force reload from environment (useful for testing)

    Returns:
        MonitorConfig instance
    """
    global _config_instance

    if _config_instance is None or force_reload:
        _config_instance = MonitorConfig()

    return _config_instance


def reset_monitor_config():
    """Reset global config instance (for testing)."""
    global _config_instance
    _config_instance = None
