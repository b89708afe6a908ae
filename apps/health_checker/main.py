"""
IB Gateway health checker entry point.

Monitors a connection to IB Gateway/TWS until interrupted, raising a
PagerTree incident while the gateway is unreachable.

Usage:
    python -m apps.health_checker.main --host 10.0.0.5 --port 4001
    python -m apps.health_checker.main -x <pagertree-integration-id>
"""

import argparse
import signal
import sys
import threading
from typing import List, Optional

from pydantic import ValidationError

from packages.gateway_config import (
    DEFAULT_CLIENT_ID,
    DEFAULT_HOST,
    DEFAULT_PORT,
    MonitorConfig,
)
from packages.health_monitor import HealthMonitorService
from packages.structured_logging import get_logger, setup_logging


logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ibgateway-health-checker",
        description="Continuously checks that IB Gateway/TWS is up and responsive",
    )

    # Flags left unset fall back to IBGW_* environment variables
    parser.add_argument(
        "-H", "--host",
        type=str,
        default=None,
        help=f"The IB host to connect to (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help=f"The IB port to connect to (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-i", "--id",
        dest="client_id",
        type=int,
        default=None,
        help=f"The client ID to connect to IB as (default: {DEFAULT_CLIENT_ID})",
    )
    parser.add_argument(
        "-x", "--pagertree-int-id",
        dest="pagertree_integration_id",
        type=str,
        default=None,
        help="The PagerTree integration ID to notify if IB is unavailable",
    )

    logging_group = parser.add_argument_group("Logging Options")
    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )
    logging_group.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write logs to this file",
    )

    return parser


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """
    Build monitor configuration from parsed arguments.

    Raises:
        ValidationError: If a value is out of range
    """
    overrides = {
        name: getattr(args, name)
        for name in ("host", "port", "client_id", "pagertree_integration_id")
        if getattr(args, name) is not None
    }
    return MonitorConfig(**overrides)


def install_signal_handlers(exit_event: threading.Event) -> None:
    """Set exit_event on Ctrl+C or SIGTERM."""

    def _handler(signum, frame):
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        exit_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=args.log_level,
        log_file=args.log_file,
        json_output=args.log_format == "json",
    )

    try:
        config = build_config(args)
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            print(f"Error: {field}: {error['msg']}", file=sys.stderr)
        return 2

    exit_event = threading.Event()
    install_signal_handlers(exit_event)

    with HealthMonitorService(config):
        exit_event.wait()

    logger.info("health_checker_exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
