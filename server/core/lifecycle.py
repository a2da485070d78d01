"""Cache system startup and shutdown.

Startup never blocks for longer than cache_startup_timeout and never fails
the host: without Redis the application simply runs uncached.
"""

import asyncio
import signal
from typing import Any, Dict, Optional, Set

from core.cache import RedisBackend
from core.config import Settings
from core.logging import get_logger
from services.cache_monitor import CacheMonitor

logger = get_logger(__name__)


class CacheLifecycle:
    """Owns the startup race, the monitor start and the ordered shutdown."""

    def __init__(self, backend: RedisBackend, monitor: CacheMonitor, settings: Settings):
        self.backend = backend
        self.monitor = monitor
        self.settings = settings
        self.initialized = False
        self.exit_code = 0
        self._shutting_down = False
        self._background: Set[asyncio.Task] = set()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def initialize(self, start_monitoring: Optional[bool] = None) -> bool:
        """Connect to Redis within the startup timeout and start monitoring.

        Returns True when the backend is connected. A connect attempt that
        outlives the timeout keeps running in the background and may still
        succeed for later callers.
        """
        logger.info("Initializing cache system",
                    redis_enabled=self.settings.redis_enabled,
                    timeout_seconds=self.settings.cache_startup_timeout)

        self._shutting_down = False
        attempt = self._spawn(self.backend.connect())
        client = None
        try:
            client = await asyncio.wait_for(asyncio.shield(attempt),
                                            timeout=self.settings.cache_startup_timeout)
        except asyncio.TimeoutError:
            logger.warning("Redis connection timed out during startup, continuing without cache",
                           timeout_seconds=self.settings.cache_startup_timeout)

        self.initialized = True
        connected = client is not None

        if connected:
            logger.info("Redis client initialized")
            if start_monitoring is None:
                start_monitoring = self.settings.cache_monitoring_enabled
            if start_monitoring:
                await self.monitor.start_monitoring(self.settings.monitoring_interval_seconds)
            else:
                logger.info("Cache monitoring disabled (set CACHE_MONITORING_ENABLED=true to enable)")
        else:
            logger.warning("Redis not available, running without cache")

        self._spawn(self._initial_health_check())
        return connected

    async def _initial_health_check(self) -> None:
        report = await self.monitor.perform_health_check()
        logger.info("Initial cache health", status=report.status.value)

    async def shutdown(self) -> None:
        """Stop monitoring, then close the backend. Never raises."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutting down cache system")

        try:
            await self.monitor.stop_monitoring()
        except Exception as e:
            logger.error("Error stopping cache monitoring", error=str(e))

        pending = list(self._background)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        try:
            await self.backend.close()
        except Exception as e:
            logger.error("Error closing cache backend", error=str(e))

        self.initialized = False
        logger.info("Cache system shutdown complete")

    def status(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "monitoring": self.monitor.is_running,
            "redis": self.backend.is_connected,
        }

    # ============================================================================
    # Process signals
    # ============================================================================

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        """Shut down cleanly on SIGTERM/SIGINT and on unhandled loop exceptions."""
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._on_signal, loop, sig)
        loop.set_exception_handler(self._on_unhandled_exception)

    def _on_signal(self, loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
        logger.info("Signal received, shutting down cache", signal=sig.name)
        loop.create_task(self._shutdown_and_stop(loop))

    def _on_unhandled_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        logger.error("Unhandled exception in event loop",
                     message=context.get("message"),
                     error=str(error) if error else None)
        self.exit_code = 1
        loop.create_task(self._shutdown_and_stop(loop))

    async def _shutdown_and_stop(self, loop: asyncio.AbstractEventLoop) -> None:
        await self.shutdown()
        loop.stop()
