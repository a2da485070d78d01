"""Structured logging configuration."""

import sys
import structlog
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from core.config import Settings

if TYPE_CHECKING:
    from models.cache import CacheHealthReport

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = (
    "aiosqlite",
    "sqlalchemy.engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "watchfiles",
)


def configure_logging(settings: Settings) -> None:
    """Configure structured logging based on settings."""
    level = getattr(logging, settings.log_level.upper())

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(level)

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
        processors.insert(0, structlog.stdlib.add_logger_name)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: bool = None, **kwargs) -> None:
    """Log cache operations."""
    log_data = {
        "operation": operation,
        "cache_key": key,
        **kwargs
    }

    if hit is not None:
        log_data["cache_hit"] = hit

    logger.debug("Cache operation", **log_data)


def log_health_report(logger: structlog.BoundLogger, report: "CacheHealthReport",
                      include_recommendations: bool) -> None:
    """Log one cache health check as a single structured line."""
    log_data = {
        "status": report.status.value,
        "redis_connected": report.redis.connected,
        "redis_latency_ms": report.redis.latency,
        "hit_rate": report.performance.hit_rate,
        "average_latency_ms": report.performance.average_latency,
        "error_rate": report.performance.error_rate,
        "total_requests": report.performance.total_requests,
        "key_count": report.memory.key_count,
        "alerts": report.alerts,
    }
    if not report.redis.connected:
        log_data["redis_error"] = report.redis.error
    if report.memory.memory_usage:
        log_data["memory_usage"] = report.memory.memory_usage
    if include_recommendations and report.recommendations:
        log_data["recommendations"] = report.recommendations

    if report.status.value == "healthy":
        logger.info("Cache health check", **log_data)
    elif report.status.value == "unhealthy":
        logger.error("Cache health check", **log_data)
    else:
        logger.warning("Cache health check", **log_data)
