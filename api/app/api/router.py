from fastapi import APIRouter

from app.api.routes import authors, genres, health, uploads

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(genres.router, prefix="/genres", tags=["genres"])
api_router.include_router(authors.router, prefix="/authors", tags=["genres"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
