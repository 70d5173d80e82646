from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.api.routes.genres import build_app_query, get_genre_context, get_genre_resolver
from app.schemas.apps import AppOut, AppSortBy, ApprovalState, SortDir
from app.services.genres import GenreContext, GenreResolver
from app.services.repository import RepositoryUnavailableError, RepositoryValidationError

router = APIRouter()


@router.get("/{author_id}/apps", response_model=list[AppOut])
async def list_author_apps(
    author_id: str = Path(min_length=1),
    approval: ApprovalState | None = Query(default=None),
    sort_by: AppSortBy | None = Query(default=None),
    sort_dir: SortDir = Query(default="desc"),
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    context: GenreContext = Depends(get_genre_context),
    resolver: GenreResolver = Depends(get_genre_resolver),
) -> list[AppOut]:
    # author_id reaches the genre through GenreContext.route_params.
    selector, options = build_app_query(approval, sort_by, sort_dir, limit, skip)
    try:
        apps = await resolver.find_in("Apps By Author", selector, options, context)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return [AppOut.from_document(app) for app in apps]
