from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.services.genres import GenreDescriptor, GenreResolver

logger = logging.getLogger(__name__)

APPROVED_APPS_SELECTOR: dict[str, Any] = {"approval": "approved"}


@dataclass(frozen=True, slots=True)
class PopulatedGenresSnapshot:
    genres: tuple[GenreDescriptor, ...] = ()
    refreshed_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return self.refreshed_at is None


@dataclass(slots=True)
class PopulatedGenresCache:
    """Last successfully computed list of genres with approved apps.

    ``refresh`` builds the whole list before replacing the snapshot reference,
    so readers see either the previous or the new complete value.
    """

    selector: dict[str, Any] = field(default_factory=lambda: dict(APPROVED_APPS_SELECTOR))
    _snapshot: PopulatedGenresSnapshot = field(default_factory=PopulatedGenresSnapshot)

    def snapshot(self) -> PopulatedGenresSnapshot:
        return self._snapshot

    async def refresh(self, resolver: GenreResolver, *, now: datetime | None = None) -> PopulatedGenresSnapshot:
        genres = await resolver.get_populated(self.selector)
        snapshot = PopulatedGenresSnapshot(
            genres=tuple(genres),
            refreshed_at=now or datetime.now(timezone.utc),
        )
        self._snapshot = snapshot
        logger.debug("populated genres refreshed count=%s", len(snapshot.genres))
        return snapshot


_CACHE = PopulatedGenresCache()


def get_populated_genres_cache() -> PopulatedGenresCache:
    return _CACHE
