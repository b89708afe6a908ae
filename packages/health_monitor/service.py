"""
Background runner for a gateway health monitor.
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import structlog

from packages.gateway_config import MonitorConfig
from packages.health_monitor.monitor import GatewayHealthMonitor


logger = structlog.get_logger(__name__)


class HealthMonitorService:
    """
    Runs a GatewayHealthMonitor on its own thread and event loop.

    Monitoring starts on construction. stop() cancels the monitor and blocks
    until it has disconnected and exited.

    **Usage**:
    ```python
    with HealthMonitorService(MonitorConfig(host="gateway.internal")):
        wait_for_shutdown_signal()
    ```
    """

    def __init__(
        self,
        config: MonitorConfig,
        monitor: Optional[GatewayHealthMonitor] = None,
    ):
        """
        Start monitoring in the background.

        Args:
            config: Validated monitor configuration
            monitor: Monitor to run (built from config if None)
        """
        self.config = config
        self.monitor = monitor or GatewayHealthMonitor(config)

        # Console writes and PagerTree posts run here; stop() never joins it
        self._executor = ThreadPoolExecutor(thread_name_prefix="ib-health-io")
        self._loop = asyncio.new_event_loop()
        self._loop.set_default_executor(self._executor)
        self._task: Optional[asyncio.Task] = None
        self._ready = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"ib-health-{config.host}:{config.port}",
            daemon=True,
        )
        self._thread.start()
        self._ready.wait()

    @property
    def running(self) -> bool:
        """Check if the monitor thread is still alive."""
        return self._thread.is_alive()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop monitoring and wait for the monitor to unwind.

        Args:
            timeout: Max seconds to wait (forever if None)
        """
        if self._loop.is_closed():
            return

        # Queued even if the loop is between iterations
        self._loop.call_soon_threadsafe(self._task.cancel)
        self._thread.join(timeout)

        if self._thread.is_alive():
            logger.warning("health_monitor_stop_timeout", timeout=timeout)
            return

        self._loop.close()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._task = self._loop.create_task(self.monitor.run())
        self._ready.set()

        try:
            self._loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            pass
        finally:
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            # A write stuck on a blocked stream is abandoned, not awaited
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "HealthMonitorService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
