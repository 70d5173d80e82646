from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from app.core.auth import Principal
from app.core.security import get_optional_human_principal
from app.schemas.apps import AppOut, AppSortBy, ApprovalState, SortDir
from app.schemas.genres import GenreKind, GenreOut, GenreSortBy, PopulatedGenresOut
from app.services.genre_cache import APPROVED_APPS_SELECTOR, PopulatedGenresCache, get_populated_genres_cache
from app.services.genres import GenreContext, GenreDescriptor, GenreListOptions, GenreResolver
from app.services.repository import RepositoryUnavailableError, RepositoryValidationError, get_repository

router = APIRouter()


def get_genre_resolver(repository=Depends(get_repository)) -> GenreResolver:
    return GenreResolver(repository)


async def get_genre_context(
    request: Request,
    principal: Principal | None = Depends(get_optional_human_principal),
    author: str | None = Query(default=None, min_length=1),
    x_installed_apps: str | None = Header(default=None, alias="X-Installed-Apps"),
) -> GenreContext:
    client_installed_app_ids = None
    if x_installed_apps is not None:
        client_installed_app_ids = [chunk.strip() for chunk in x_installed_apps.split(",") if chunk.strip()]
    return GenreContext(
        user_id=principal.user_id if principal else None,
        author_id=author,
        route_params=dict(request.path_params),
        client_installed_app_ids=client_installed_app_ids,
    )


def build_app_query(
    approval: ApprovalState | None,
    sort_by: AppSortBy | None,
    sort_dir: SortDir,
    limit: int,
    skip: int,
) -> tuple[dict[str, Any], dict[str, Any]]:
    selector: dict[str, Any] = {}
    if approval is not None:
        selector["approval"] = approval
    options: dict[str, Any] = {"limit": limit, "skip": skip}
    if sort_by is not None:
        options["sort"] = {sort_by: 1 if sort_dir == "asc" else -1}
    return selector, options


def _genre_out(genre: GenreDescriptor) -> GenreOut:
    return GenreOut(**genre.as_dict())


@router.get("", response_model=list[GenreOut])
async def list_genres(
    kind: GenreKind | None = Query(default=None),
    show_summary: bool | None = Query(default=None),
    sort_by: GenreSortBy | None = Query(default=None),
    resolver: GenreResolver = Depends(get_genre_resolver),
) -> list[GenreOut]:
    where: dict[str, Any] = {}
    if kind is not None:
        where["kind"] = kind
    if show_summary is not None:
        where["show_summary"] = show_summary
    iteratee = None
    if sort_by == "priority":
        iteratee = lambda genre: genre.priority  # noqa: E731
    elif sort_by == "name":
        iteratee = lambda genre: genre.name.lower()  # noqa: E731

    try:
        genres = await resolver.get_all(GenreListOptions(where=where or None, iteratee=iteratee))
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [_genre_out(genre) for genre in genres]


@router.get("/populated", response_model=PopulatedGenresOut)
async def list_populated_genres(
    live: bool = Query(default=False),
    context: GenreContext = Depends(get_genre_context),
    cache: PopulatedGenresCache = Depends(get_populated_genres_cache),
    resolver: GenreResolver = Depends(get_genre_resolver),
) -> PopulatedGenresOut:
    snapshot = cache.snapshot()
    if not live and not snapshot.is_empty:
        return PopulatedGenresOut(
            genres=[_genre_out(genre) for genre in snapshot.genres],
            refreshed_at=snapshot.refreshed_at,
            source="cache",
        )

    try:
        # The shared snapshot is computed without a user context.
        genres = await resolver.get_populated(dict(APPROVED_APPS_SELECTOR), context=context if live else None)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return PopulatedGenresOut(genres=[_genre_out(genre) for genre in genres], source="live")


@router.get("/{name}", response_model=GenreOut)
async def get_genre(name: str, resolver: GenreResolver = Depends(get_genre_resolver)) -> GenreOut:
    try:
        genre = await resolver.get_one(name)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if genre is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="genre not found")
    return _genre_out(genre)


@router.get("/{name}/apps", response_model=list[AppOut])
async def list_genre_apps(
    name: str,
    approval: ApprovalState | None = Query(default=None),
    sort_by: AppSortBy | None = Query(default=None),
    sort_dir: SortDir = Query(default="desc"),
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    context: GenreContext = Depends(get_genre_context),
    resolver: GenreResolver = Depends(get_genre_resolver),
) -> list[AppOut]:
    selector, options = build_app_query(approval, sort_by, sort_dir, limit, skip)
    try:
        apps = await resolver.find_in(name, selector, options, context)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return [AppOut.from_document(app) for app in apps]


@router.get("/{name}/apps/first", response_model=AppOut)
async def get_first_genre_app(
    name: str,
    approval: ApprovalState | None = Query(default=None),
    sort_by: AppSortBy | None = Query(default=None),
    sort_dir: SortDir = Query(default="desc"),
    context: GenreContext = Depends(get_genre_context),
    resolver: GenreResolver = Depends(get_genre_resolver),
) -> AppOut:
    selector, options = build_app_query(approval, sort_by, sort_dir, limit=1, skip=0)
    try:
        app = await resolver.find_one_in(name, selector, options, context)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if app is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no app matches genre")
    return AppOut.from_document(app)
