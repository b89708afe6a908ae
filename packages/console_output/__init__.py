"""Console notices for the health monitor.

Line-oriented operator output: informational notices go to stdout, failures
to stderr. Writes run in a worker thread so a stuck terminal or pipe never
holds up shutdown.
"""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO

__all__ = ["ConsoleSink"]


class ConsoleSink:
    """Writes timestamped notice lines to an output and an error stream."""

    def __init__(
        self,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
        timestamps: bool = True,
    ):
        """
        Args:
            out: Stream for informational lines (stdout if None)
            err: Stream for error lines (stderr if None)
            timestamps: Prefix each line with a UTC timestamp
        """
        self.out = out
        self.err = err
        self.timestamps = timestamps

    async def write_line(self, message: str) -> None:
        await asyncio.to_thread(self._write, self.out or sys.stdout, message)

    async def write_error_line(self, message: str) -> None:
        await asyncio.to_thread(self._write, self.err or sys.stderr, message)

    def _format(self, message: str) -> str:
        if not self.timestamps:
            return message
        now = datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        return f"[{now}] {message}"

    def _write(self, stream: TextIO, message: str) -> None:
        stream.write(self._format(message) + "\n")
        stream.flush()
