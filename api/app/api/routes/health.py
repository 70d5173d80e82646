from fastapi import APIRouter, Depends, HTTPException, status

from app.services.genre_cache import PopulatedGenresCache, get_populated_genres_cache
from app.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    repository=Depends(get_repository),
    cache: PopulatedGenresCache = Depends(get_populated_genres_cache),
) -> dict[str, str | int | None]:
    try:
        categories = await repository.list_categories()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    snapshot = cache.snapshot()
    return {
        "status": "ok",
        "categories": len(categories),
        "populated_genres_refreshed_at": snapshot.refreshed_at.isoformat() if snapshot.refreshed_at else None,
    }
