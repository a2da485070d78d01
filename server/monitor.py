"""Standalone cache health monitor.

Runs the cache monitoring loop without the HTTP service:

    python monitor.py

Exits 0 on SIGTERM/SIGINT and 1 after an unhandled exception.
"""

import asyncio
import sys

from core.container import container
from core.logging import configure_logging, get_logger


def main() -> int:
    settings = container.settings()
    configure_logging(settings)
    logger = get_logger(__name__)

    lifecycle = container.lifecycle()
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    lifecycle.install_signal_handlers(loop)

    try:
        connected = loop.run_until_complete(lifecycle.initialize(start_monitoring=True))
        if not connected:
            logger.warning("Monitoring without a cache backend, health reports will show unavailable")
            loop.run_until_complete(container.cache_monitor().start_monitoring())
        loop.run_forever()
    finally:
        loop.run_until_complete(lifecycle.shutdown())
        loop.close()

    return lifecycle.exit_code


if __name__ == "__main__":
    sys.exit(main())
