#!/usr/bin/env python3
"""
Pack Rip Backend Application

Main entry point: wires the config store, collection ledger, broadcaster,
per-channel window schedulers and the FastAPI web server, then runs until a
shutdown signal arrives.
"""

import asyncio
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load .env before anything configures logging or reads the environment
load_dotenv()

from packrip.broadcast.publisher import ResultBroadcaster
from packrip.cards.awarder import CardAwarder
from packrip.cards.event_store import RipEventStore
from packrip.cards.scheduler import SchedulerRegistry, WindowScheduler
from packrip.ledger.store import CollectionLedger, ConfigStore, JsonDataFile
from packrip.utils.config import as_list, get_config_value, load_config
from packrip.utils.logger import get_logger
from packrip.web_server import RipWebServer

logger = get_logger(__name__)


class PackRipApp:
    """Pack rip backend application.

    Responsible for building the stores, the schedulers and the web server,
    starting autonomous windows for configured channels, and shutting
    everything down gracefully.
    """

    def __init__(self, config=None):
        self.config = config or load_config()
        self.running = True

        data_path = Path(get_config_value(self.config, "storage.data_file", "data.json"))
        self.data_file = JsonDataFile(data_path)
        self.config_store = ConfigStore(self.data_file)
        self.ledger = CollectionLedger(self.data_file)
        self.awarder = CardAwarder(self.config_store, self.ledger)
        self.events = RipEventStore()
        self.broadcaster = ResultBroadcaster(self.config)
        self.schedulers = SchedulerRegistry(self._make_scheduler)
        self.web_server = RipWebServer(self.config, self.schedulers, self.awarder, self.events)

        logger.info("Pack rip application initialized (data file %s)", data_path)

    def _make_scheduler(self, channel_id: str) -> WindowScheduler:
        return WindowScheduler(
            channel_id,
            self.awarder,
            broadcaster=self.broadcaster,
            events=self.events,
            window_seconds=float(get_config_value(self.config, "rip.window_seconds", 70)),
            period_seconds=float(get_config_value(self.config, "rip.period_seconds", 360)),
        )

    def _display_config_summary(self):
        logger.info("=" * 60)
        logger.info("CONFIGURATION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Mode: {get_config_value(self.config, 'rip.mode', 'manual')}")
        logger.info(f"Channels: {as_list(get_config_value(self.config, 'rip.channels'))}")
        logger.info(f"Window: {get_config_value(self.config, 'rip.window_seconds')}s "
                    f"every {get_config_value(self.config, 'rip.period_seconds')}s")
        logger.info(f"Broadcast enabled: {self.broadcaster.enabled}")
        logger.info(f"Server: {get_config_value(self.config, 'server.host')}:"
                    f"{get_config_value(self.config, 'server.port')}")
        logger.info("=" * 60)

    def _handle_signal(self, signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.running = False

    async def start(self):
        """Start services and run until a shutdown signal is received."""
        self._display_config_summary()
        try:
            mode = str(get_config_value(self.config, "rip.mode", "manual")).lower()
            if mode == "autonomous":
                channels = as_list(get_config_value(self.config, "rip.channels"))
                if not channels:
                    logger.warning("Autonomous mode without rip.channels; no windows will open")
                await self.schedulers.start_autonomous(channels)

            host = get_config_value(self.config, "server.host", "0.0.0.0")
            port = int(get_config_value(self.config, "server.port", 3000))
            server_task = asyncio.create_task(self.web_server.start(host=host, port=port))
            # Give the server a moment to attempt bind; a bind failure ends the task
            await asyncio.sleep(0.2)
            if server_task.done() and server_task.exception():
                raise server_task.exception()

            logger.info(f"Backend running at http://{host}:{port}")
            while self.running and not server_task.done():
                await asyncio.sleep(1)
            logger.info("Shutdown requested, stopping application...")
        finally:
            await self.stop()

    async def stop(self):
        """Stop schedulers, flush broadcasts and close the web server."""
        self.running = False
        await self.schedulers.stop_all()
        await self.broadcaster.drain()
        self.broadcaster.close()
        await self.web_server.stop()
        logger.info("Pack rip application stopped")


async def main():
    """Main entry point for the pack rip backend"""
    app = PackRipApp()

    signal.signal(signal.SIGINT, app._handle_signal)
    signal.signal(signal.SIGTERM, app._handle_signal)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.exception(f"Application failed: {e}")
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
