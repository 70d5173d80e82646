"""Genres: one name space over categories and computed catalog views.

A genre name resolves either to a category (apps tagged with that category) or
to one of the extra genres declared in ``EXTRA_GENRES``, each of which carries
a selector/options pair that is either static or computed from the
per-request ``GenreContext``. The caller's own selector/options are merged
underneath the genre's, so genre fields win on conflicting keys.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Protocol

from app.services.selectors import QueryOptions, Selector

logger = logging.getLogger(__name__)


class Unresolved(Enum):
    NO_CONTEXT = "no_context"


NO_CONTEXT = Unresolved.NO_CONTEXT


class CatalogRepository(Protocol):
    async def find_apps(self, selector: Selector | None, options: QueryOptions | None = None) -> list[dict[str, Any]]: ...

    async def find_one_app(self, selector: Selector | None, options: QueryOptions | None = None) -> dict[str, Any] | None: ...

    async def get_app(self, app_id: str) -> dict[str, Any] | None: ...

    async def list_categories(self) -> list[dict[str, Any]]: ...

    async def find_category(self, name: str) -> dict[str, Any] | None: ...

    async def get_user(self, user_id: str) -> dict[str, Any] | None: ...


@dataclass(frozen=True, slots=True)
class GenreContext:
    """Per-request state consulted by computed genres.

    ``client_installed_app_ids`` is ``None`` outside a client context and a
    (possibly empty) sequence of locally remembered app ids inside one.
    """

    user_id: str | None = None
    author_id: str | None = None
    route_params: Mapping[str, str] = field(default_factory=dict)
    client_installed_app_ids: Sequence[str] | None = None


GenreFunction = Callable[[CatalogRepository, GenreContext], Awaitable["dict[str, Any] | Unresolved"]]


@dataclass(frozen=True, slots=True)
class Static:
    value: Mapping[str, Any]

    async def evaluate(self, repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | Unresolved:
        return dict(self.value)


@dataclass(frozen=True, slots=True)
class Computed:
    function: GenreFunction

    async def evaluate(self, repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | Unresolved:
        return await self.function(repository, context)


GenreValue = Static | Computed


@dataclass(frozen=True, slots=True)
class GenreDescriptor:
    name: str
    kind: Literal["extra", "category"]
    priority: int = 0
    show_summary: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ExtraGenre:
    name: str
    selector: GenreValue
    options: GenreValue = Static({})
    priority: int = 0
    show_summary: bool = False

    def describe(self) -> GenreDescriptor:
        return GenreDescriptor(
            name=self.name,
            kind="extra",
            priority=self.priority,
            show_summary=self.show_summary,
        )


@dataclass(frozen=True, slots=True)
class ResolvedQuery:
    """Merged selector/options. A ``None`` selector matches nothing."""

    selector: Selector | None
    options: QueryOptions

    @property
    def matches_nothing(self) -> bool:
        return self.selector is None


@dataclass(slots=True)
class GenreListOptions:
    where: Mapping[str, Any] | None = None
    filter: Callable[[GenreDescriptor], bool] | None = None
    iteratee: Callable[[GenreDescriptor], Any] | None = None


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def latest_version(app: Mapping[str, Any]) -> dict[str, Any] | None:
    versions = app.get("versions")
    if not isinstance(versions, list):
        return None
    dated = [
        (stamp, version)
        for version in versions
        if isinstance(version, dict) and (stamp := parse_timestamp(version.get("date_time"))) is not None
    ]
    if not dated:
        return None
    return max(dated, key=lambda pair: pair[0])[1]


async def _get_user(repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | None:
    if not context.user_id:
        return None
    return await repository.get_user(context.user_id)


def _installed_apps(user: Mapping[str, Any]) -> dict[str, Any]:
    installed = user.get("installed_apps")
    return installed if isinstance(installed, dict) else {}


async def _installed_selector(repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | Unresolved:
    user = await _get_user(repository, context)
    app_ids: list[str] = []
    if context.client_installed_app_ids is not None:
        app_ids.extend(context.client_installed_app_ids)
    if user:
        app_ids.extend(_installed_apps(user))
    return {"id": {"$in": list(dict.fromkeys(app_ids))}}


async def _partition_installed(
    repository: CatalogRepository,
    user: Mapping[str, Any],
) -> tuple[list[str], list[str]]:
    outdated: list[str] = []
    current: list[str] = []
    for app_id, details in _installed_apps(user).items():
        app = await repository.get_app(app_id)
        if app is None:
            continue
        version = details.get("version") if isinstance(details, dict) else None
        installed_at = parse_timestamp(version.get("date_time")) if isinstance(version, dict) else None
        latest = latest_version(app)
        latest_at = parse_timestamp(latest.get("date_time")) if latest else None
        if installed_at is None or latest_at is None:
            continue
        if installed_at < latest_at:
            outdated.append(app_id)
        else:
            current.append(app_id)
    return outdated, current


async def _updates_available_selector(
    repository: CatalogRepository,
    context: GenreContext,
) -> dict[str, Any] | Unresolved:
    user = await _get_user(repository, context)
    if not user:
        return NO_CONTEXT
    outdated, _ = await _partition_installed(repository, user)
    return {"id": {"$in": outdated}}


async def _no_updates_selector(repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | Unresolved:
    user = await _get_user(repository, context)
    if not user:
        return NO_CONTEXT
    _, current = await _partition_installed(repository, user)
    return {"id": {"$in": current}}


async def _apps_by_me_selector(repository: CatalogRepository, context: GenreContext) -> dict[str, Any] | Unresolved:
    user = await _get_user(repository, context)
    if not user:
        return NO_CONTEXT
    return {"author": user["id"]}


async def _apps_by_author_selector(
    repository: CatalogRepository,
    context: GenreContext,
) -> dict[str, Any] | Unresolved:
    return {"author": context.author_id or context.route_params.get("author_id")}


EXTRA_GENRES: tuple[ExtraGenre, ...] = (
    ExtraGenre(name="All", selector=Static({}), priority=1),
    ExtraGenre(
        name="Popular",
        selector=Static({}),
        options=Static({"sort": {"install_count": -1}}),
        priority=0,
        show_summary=True,
    ),
    ExtraGenre(name="New", selector=Static({}), options=Static({"sort": {"created_at": -1}}), priority=1),
    ExtraGenre(
        name="New & Updated",
        selector=Static({}),
        options=Static({"sort": {"last_updated": -1}}),
        priority=0,
        show_summary=True,
    ),
    ExtraGenre(name="This Week", selector=Static({}), options=Static({"sort": {"install_count_this_week": -1}})),
    ExtraGenre(name="Installed", selector=Computed(_installed_selector), priority=2),
    ExtraGenre(name="Updates Available", selector=Computed(_updates_available_selector)),
    ExtraGenre(name="No Updates", selector=Computed(_no_updates_selector)),
    ExtraGenre(name="Apps By Me", selector=Computed(_apps_by_me_selector)),
    ExtraGenre(name="Apps By Author", selector=Computed(_apps_by_author_selector)),
)


def _category_descriptor(category: Mapping[str, Any]) -> GenreDescriptor:
    return GenreDescriptor(
        name=category["name"],
        kind="category",
        priority=int(category.get("priority") or 0),
        show_summary=bool(category.get("show_summary", False)),
    )


class GenreResolver:
    def __init__(self, repository: CatalogRepository, extra_genres: Sequence[ExtraGenre] = EXTRA_GENRES) -> None:
        self.repository = repository
        self.extra_genres = tuple(extra_genres)
        self._extra_by_name = {genre.name: genre for genre in self.extra_genres}

    async def resolve(
        self,
        name: str,
        selector: Selector | None = None,
        options: QueryOptions | None = None,
        context: GenreContext | None = None,
    ) -> ResolvedQuery:
        context = context or GenreContext()
        caller_selector = dict(selector or {})
        caller_options = dict(options or {})

        category = await self.repository.find_category(name)
        if category:
            caller_selector["categories"] = category["name"]
            return ResolvedQuery(selector=caller_selector, options=caller_options)

        extra_genre = self._extra_by_name.get(name)
        if extra_genre is None:
            logger.debug("unknown genre name=%s; resolving to empty result", name)
            return ResolvedQuery(selector=None, options=caller_options)

        genre_selector = await extra_genre.selector.evaluate(self.repository, context)
        if genre_selector is NO_CONTEXT:
            return ResolvedQuery(selector=None, options=caller_options)
        genre_options = await extra_genre.options.evaluate(self.repository, context)
        if genre_options is NO_CONTEXT:
            return ResolvedQuery(selector=None, options=caller_options)

        return ResolvedQuery(
            selector={**caller_selector, **genre_selector},
            options={**caller_options, **genre_options},
        )

    async def find_in(
        self,
        name: str,
        selector: Selector | None = None,
        options: QueryOptions | None = None,
        context: GenreContext | None = None,
    ) -> list[dict[str, Any]]:
        resolved = await self.resolve(name, selector, options, context)
        if resolved.matches_nothing:
            return []
        return await self.repository.find_apps(resolved.selector, resolved.options)

    async def find_one_in(
        self,
        name: str,
        selector: Selector | None = None,
        options: QueryOptions | None = None,
        context: GenreContext | None = None,
    ) -> dict[str, Any] | None:
        resolved = await self.resolve(name, selector, options, context)
        if resolved.matches_nothing:
            return None
        return await self.repository.find_one_app(resolved.selector, resolved.options)

    async def get_all(self, options: GenreListOptions | None = None) -> list[GenreDescriptor]:
        options = options or GenreListOptions()
        categories = await self.repository.list_categories()
        genres = [genre.describe() for genre in self.extra_genres]
        genres.extend(_category_descriptor(category) for category in categories)

        if options.where:
            where = dict(options.where)
            genres = [genre for genre in genres if _matches_where(genre, where)]
        if options.filter:
            genres = [genre for genre in genres if options.filter(genre)]
        if options.iteratee:
            return sorted(genres, key=options.iteratee)
        return genres

    async def get_one(self, name: str) -> GenreDescriptor | None:
        category = await self.repository.find_category(name)
        if category:
            return _category_descriptor(category)
        extra_genre = self._extra_by_name.get(name)
        return extra_genre.describe() if extra_genre else None

    async def get_populated(
        self,
        selector: Selector | None = None,
        options: QueryOptions | None = None,
        context: GenreContext | None = None,
        *,
        list_options: GenreListOptions | None = None,
    ) -> list[GenreDescriptor]:
        populated = []
        for genre in await self.get_all(list_options):
            if await self.find_one_in(genre.name, selector, options, context) is not None:
                populated.append(genre)
        return populated


def _matches_where(genre: GenreDescriptor, where: Mapping[str, Any]) -> bool:
    values = genre.as_dict()
    return all(key in values and values[key] == expected for key, expected in where.items())
