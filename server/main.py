"""
FastAPI service for the transcript cache, cache health monitor and search index.
"""

from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import cache, transcripts

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting transcript service", environment=settings.environment)
    set_startup_time()

    await container.database().startup()
    await container.lifecycle().initialize()

    logger.info("Services started successfully")
    yield

    # Monitor and Redis first, then the store
    await container.lifecycle().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Transcript Cache Service",
    version="1.0.0",
    description="Transcript read-through cache, cache health monitoring and search indexing",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", error_type=type(e).__name__, error=str(e),
                         path=request.url.path, exc_info=True)
            return ORJSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# CORS must be added after the exception middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(cache.router)
app.include_router(transcripts.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    health = await get_health_status(
        database=container.database(),
        backend=container.cache_backend(),
        monitor=container.cache_monitor(),
        lifecycle=container.lifecycle(),
        settings=settings,
    )
    health["timestamp"] = datetime.now(timezone.utc).isoformat()
    return health


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting transcript service", host=settings.host, port=settings.port)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
