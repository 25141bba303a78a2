# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Main server for the NetBird Events Exporter.

Waits for Loki, opens the events database, initializes the cursor and runs
the pump until the process is stopped.
"""

import asyncio
import logging
import signal
import sys
import threading
from typing import Optional

from ..config import Config
from ..database.cursor_store import CursorStore
from ..database.event_reader import EventReader
from ..database.sqlite_client import SQLiteClient
from ..delivery.loki_client import LokiClient
from ..errors import StartupError
from .pump import Pump

logger = logging.getLogger(__name__)


class ExporterServer:
    """
    Exporter process.

    Manages:
    - Loki readiness check
    - Events database access
    - Cursor initialization
    - The pump loop
    """

    def __init__(self, config: Optional[Config] = None, loki_client: Optional[LokiClient] = None):
        """
        Initialize exporter server.

        Args:
            config: Configuration instance (creates default if not provided)
            loki_client: Loki client (built from config if not provided)
        """
        self.config = config or Config()
        self.loki_client = loki_client or LokiClient(
            self.config.loki_url,
            push_timeout=self.config.push_timeout,
            ready_timeout=self.config.ready_timeout,
        )

        self.sqlite_client: Optional[SQLiteClient] = None
        self.reader: Optional[EventReader] = None
        self.cursor = CursorStore()
        self.pump: Optional[Pump] = None
        self.running = False
        # Set by stop(); also wakes the readiness wait, which runs in a worker thread
        self._stop_requested = threading.Event()

    def _log_banner(self) -> None:
        logger.info("========================================")
        logger.info("NetBird Events Exporter")
        logger.info("========================================")
        logger.info(f"Loki URL: {self.config.loki_url}")
        logger.info(f"Events DB: {self.config.db_path}")
        logger.info(f"Check interval: {self.config.check_interval}s")
        logger.info(f"Batch size: {self.config.batch_size}")
        logger.info("========================================")

    def _initialize_source(self) -> None:
        """Open the events database and position the cursor at its newest event."""
        self.sqlite_client = SQLiteClient(self.config.db_path)
        self.sqlite_client.verify()

        self.reader = EventReader(self.sqlite_client)
        self.cursor.initial(self.reader)

    def _initialize_pump(self) -> None:
        self.pump = Pump(
            reader=self.reader,
            client=self.loki_client,
            cursor=self.cursor,
            batch_size=self.config.batch_size,
            check_interval=self.config.check_interval,
            max_consecutive_errors=self.config.max_consecutive_errors,
            error_backoff=self.config.error_backoff,
            job=self.config.job_label,
            log_events=self.config.log_events,
        )

    async def initialize(self) -> bool:
        """
        Run the startup sequence.

        Returns:
            True when ready to poll, False if a stop was requested while waiting for Loki

        Raises:
            StartupUnreachable: If Loki never becomes ready
            SourceOpenFailure: If the events database cannot be opened
        """
        self._log_banner()

        ready = await asyncio.to_thread(
            self.loki_client.wait_until_ready,
            self.config.ready_attempts,
            self.config.ready_interval,
            self._stop_requested.wait,
            self._stop_requested,
        )
        if not ready:
            return False

        self._initialize_source()
        self._initialize_pump()
        return True

    async def start(self, max_cycles: Optional[int] = None) -> None:
        """Start the server; runs until stopped."""
        if self.running:
            logger.warning("Server already running")
            return

        self.running = True
        try:
            await self.initialize()
            if self._stop_requested.is_set():
                logger.info("Shutdown requested during startup")
                return
            await self.pump.run(max_cycles=max_cycles)
        finally:
            self.running = False
            self.loki_client.close()
            logger.info("Exporter stopped")

    async def stop(self) -> None:
        """
        Stop the server gracefully.

        Safe to call at any point, including before or during startup.
        """
        logger.info("Stopping exporter...")
        self._stop_requested.set()

        if self.pump:
            self.pump.stop()


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


async def serve(config: Config) -> None:
    """Run the exporter with signal handling until it is stopped."""
    server = ExporterServer(config)
    loop = asyncio.get_running_loop()

    def handle_signal() -> None:
        logger.info("Received shutdown signal")
        asyncio.ensure_future(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal)
        except NotImplementedError:
            # Not available on Windows event loops
            pass

    await server.start()


def main(config: Optional[Config] = None) -> int:
    """
    Process entry point.

    Returns:
        Exit status: 1 on startup failure; otherwise 0 once stopped by a signal
    """
    config = config or Config()
    setup_logging(config.log_level)

    try:
        asyncio.run(serve(config))
    except StartupError as e:
        logger.error(f"Startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())
