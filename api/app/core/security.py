from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from app.core.auth import Principal
from app.core.config import Settings, get_settings

DEFAULT_ROLE = "user"
ROLE_SCOPES: dict[str, set[str]] = {
    "user": {"catalog:read", "uploads:write"},
    "readonly": {"catalog:read"},
    "admin": {"catalog:read", "uploads:write"},
}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _unavailable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def parse_bearer_token(authorization: str) -> str:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise _unauthorized("bearer token required")
    token = token.strip()
    if not token:
        raise _unauthorized("empty bearer token")
    return token


async def get_optional_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    """Resolve the bearer token to an app store user, or ``None`` for anonymous requests."""
    if authorization is None:
        return None

    token = parse_bearer_token(authorization)
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise _unavailable("Supabase auth is not configured")

    user = await fetch_supabase_user(settings, token)
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise _unauthorized("invalid bearer token")

    role = resolve_user_role(user)
    return Principal(subject=user_id, role=role, scopes=set(ROLE_SCOPES.get(role, ROLE_SCOPES[DEFAULT_ROLE])))


async def fetch_supabase_user(settings: Settings, token: str) -> dict[str, Any]:
    url = f"{settings.supabase_url.rstrip('/')}/auth/v1/user"
    headers = {"Authorization": f"Bearer {token}", "apikey": settings.supabase_anon_key}

    try:
        async with httpx.AsyncClient(timeout=settings.auth_timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise _unavailable("Supabase auth verification unavailable") from exc

    if response.status_code in {status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN}:
        raise _unauthorized("invalid bearer token")
    if response.status_code != status.HTTP_200_OK:
        raise _unavailable("Supabase auth verification failed")
    return response.json()


def resolve_user_role(user: dict[str, Any]) -> str:
    # app_metadata is server controlled and takes precedence over user_metadata.
    for metadata_key in ("app_metadata", "user_metadata"):
        metadata = user.get(metadata_key)
        role = metadata.get("role") if isinstance(metadata, dict) else None
        if isinstance(role, str) and role:
            return role
    return DEFAULT_ROLE
