"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import RedisBackend
from core.lifecycle import CacheLifecycle
from services.cache_service import CacheService
from services.cache_monitor import CacheMonitor
from services.search_indexing import SearchIndexingService
from services.transcripts import TranscriptService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Relational store
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Redis adapter, shared connection handle for the whole process
    cache_backend = providers.Singleton(
        RedisBackend,
        settings=settings
    )

    cache_service = providers.Singleton(
        CacheService,
        backend=cache_backend,
        settings=settings
    )

    cache_monitor = providers.Singleton(
        CacheMonitor,
        cache_service=cache_service,
        backend=cache_backend,
        settings=settings
    )

    search_indexing = providers.Singleton(
        SearchIndexingService,
        database=database,
        cache=cache_service,
        batch_size=settings.provided.index_batch_size,
        batch_delay=settings.provided.index_batch_delay
    )

    lifecycle = providers.Singleton(
        CacheLifecycle,
        backend=cache_backend,
        monitor=cache_monitor,
        settings=settings
    )

    # External summary generator; deployments override this provider
    summarizer = providers.Object(None)

    transcript_service = providers.Factory(
        TranscriptService,
        database=database,
        cache=cache_service,
        search_indexing=search_indexing,
        summarizer=summarizer
    )


# Global container instance
container = Container()
