from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from opentelemetry import trace

from app.services.genre_cache import PopulatedGenresCache
from app.services.genres import GenreResolver

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ResolverFactory = Callable[[], GenreResolver]


async def refresh_once(cache: PopulatedGenresCache, resolver_factory: ResolverFactory) -> bool:
    """Run one refresh tick. A failure leaves the previous snapshot in place."""
    with tracer.start_as_current_span("genres.refresh_populated") as span:
        try:
            snapshot = await cache.refresh(resolver_factory())
        except Exception as exc:
            span.record_exception(exc)
            logger.exception("populated genres refresh failed; keeping previous snapshot")
            return False
        span.set_attribute("genres.populated_count", len(snapshot.genres))
        return True


async def run_populated_refresher(
    cache: PopulatedGenresCache,
    resolver_factory: ResolverFactory,
    *,
    interval_seconds: float,
) -> None:
    logger.info("populated genres refresher started interval_seconds=%.1f", interval_seconds)
    try:
        while True:
            await refresh_once(cache, resolver_factory)
            await asyncio.sleep(interval_seconds)
    finally:
        logger.info("populated genres refresher stopped")
