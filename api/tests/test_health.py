from fastapi.testclient import TestClient

from app.main import app
from app.services.genre_cache import PopulatedGenresCache, get_populated_genres_cache
from app.services.repository import get_repository
from app.services.store import InMemoryStore


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readyz_reports_catalog_and_cache(sample_store: InMemoryStore) -> None:
    app.dependency_overrides[get_repository] = lambda: sample_store
    app.dependency_overrides[get_populated_genres_cache] = lambda: PopulatedGenresCache()
    try:
        response = TestClient(app).get("/readyz")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "categories": 2, "populated_genres_refreshed_at": None}


def test_readyz_is_unavailable_without_database(monkeypatch) -> None:
    monkeypatch.setenv("APPSTORE_CATALOG_BACKEND", "postgres")
    monkeypatch.delenv("APPSTORE_DATABASE_URL", raising=False)
    from app.core.config import get_settings

    get_settings.cache_clear()
    get_repository.cache_clear()
    try:
        response = TestClient(app).get("/readyz")
    finally:
        get_settings.cache_clear()
        get_repository.cache_clear()

    assert response.status_code == 503
