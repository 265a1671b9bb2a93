#!/usr/bin/env python3
"""
Quick Roll service orchestrator

Startup order:
- Logging (from config)
- NATS connection
- Message store
- Quick roll plugin

This file only coordinates component startup and shutdown.
Roll logic lives in quickroll/, the messaging surface in plugins/quick_roll/.
"""

import asyncio
import logging
import sys
from typing import Optional

import nats

from common.config import QuickRollConfig, load_config, setup_logging
from common.database import MessageStore
from plugins.quick_roll import QuickRollPlugin

logger = logging.getLogger(__name__)


class QuickRollService:
    """
    Quick roll service orchestrator

    Responsibilities:
    1. Connect infrastructure (NATS, database)
    2. Start the quick roll plugin
    3. Coordinate graceful shutdown
    """

    def __init__(self, config: QuickRollConfig):
        self.config = config
        self.nats = None
        self.store: Optional[MessageStore] = None
        self.plugin: Optional[QuickRollPlugin] = None

    @classmethod
    def from_file(cls, config_path: str = "config.yaml") -> "QuickRollService":
        return cls(load_config(config_path))

    async def start(self):
        """Start all components in correct order"""
        try:
            logger.info(f"Connecting to NATS at {self.config.nats_url}...")
            self.nats = await nats.connect(self.config.nats_url)

            logger.info("Opening message store...")
            self.store = MessageStore(self.config.database_url)
            await self.store.connect()

            self.plugin = QuickRollPlugin(self.nats, self.store, self.config)
            await self.plugin.initialize()

            logger.info("✅ Quick roll service started")

        except Exception as e:
            logger.error(f"Failed to start quick roll service: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self):
        """Stop all components in reverse order"""
        logger.info("Shutting down quick roll service...")

        if self.plugin:
            await self.plugin.shutdown()
        if self.store:
            await self.store.close()
        if self.nats:
            await self.nats.drain()

        logger.info("✅ Quick roll service stopped")


async def main(config_path: str = "config.yaml"):
    """Entry point"""
    config = load_config(config_path)
    setup_logging(config)

    service = QuickRollService(config)

    try:
        await service.start()
        # Run until interrupted
        await asyncio.Event().wait()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await service.stop()


def run():
    asyncio.run(main(*sys.argv[1:2]))


if __name__ == "__main__":
    run()
