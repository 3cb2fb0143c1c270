#!/usr/bin/env python3
"""
Main entry point: run one client with the configuration from client_config.yml.
"""

import asyncio

from .client import Client
from .config import get_config
from .core.event_bus import EventType
from .logging_config import setup_logging


async def main() -> None:
    config = get_config()
    setup_logging(config.debug.log_level, config.debug.log_file)

    client = Client(config)
    client.on(EventType.DESTROY, lambda event: client.log.error(f"Destroyed: {event.data.get('reason')}"))
    await client.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
