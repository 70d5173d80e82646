from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from app.core.config import get_settings
from app.services.selectors import (
    InvalidSelectorError,
    QueryOptions,
    Selector,
    compile_order_by,
    compile_where,
    parse_options,
    to_json,
)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryValidationError(RepositoryError):
    """Raised when a selector or options payload cannot be executed."""


class PostgresRepository:
    """Catalog documents stored as jsonb.

    Tables: ``apps(id text primary key, doc jsonb)``,
    ``categories(name text primary key, position int, doc jsonb)`` and
    ``users(id text primary key, doc jsonb)``. ``scripts/seed_catalog.py``
    emits the DDL.
    """

    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find_apps(self, selector: Selector | None, options: QueryOptions | None = None) -> list[dict[str, Any]]:
        if selector is None:
            return []
        query, params = self._build_apps_query(selector, options)
        pool = await self._get_pool()
        rows = await pool.fetch(query, *params)
        return [self._document_row_to_dict(row) for row in rows]

    async def find_one_app(self, selector: Selector | None, options: QueryOptions | None = None) -> dict[str, Any] | None:
        if selector is None:
            return None
        query, params = self._build_apps_query(selector, options, force_limit=1)
        pool = await self._get_pool()
        row = await pool.fetchrow(query, *params)
        if row is None:
            return None
        return self._document_row_to_dict(row)

    async def get_app(self, app_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow("select id, doc from apps where id = $1", app_id)
        if row is None:
            return None
        return self._document_row_to_dict(row)

    async def list_categories(self) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select name, position, doc
            from categories
            order by position asc, name asc
            """
        )
        return [self._category_row_to_dict(row) for row in rows]

    async def find_category(self, name: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow("select name, position, doc from categories where name = $1", name)
        if row is None:
            return None
        return self._category_row_to_dict(row)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow("select id, doc from users where id = $1", user_id)
        if row is None:
            return None
        return self._document_row_to_dict(row)

    async def upsert_app(self, document: dict[str, Any]) -> None:
        app_id = self._require_id(document)
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into apps (id, doc) values ($1, $2::jsonb)
            on conflict (id) do update set doc = excluded.doc
            """,
            app_id,
            to_json({**document, "id": app_id}),
        )

    async def upsert_category(self, document: dict[str, Any], *, position: int = 0) -> None:
        name = document.get("name")
        if not isinstance(name, str) or not name:
            raise RepositoryValidationError("category name is required")
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into categories (name, position, doc) values ($1, $2, $3::jsonb)
            on conflict (name) do update set position = excluded.position, doc = excluded.doc
            """,
            name,
            position,
            to_json(document),
        )

    async def upsert_user(self, document: dict[str, Any]) -> None:
        user_id = self._require_id(document)
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into users (id, doc) values ($1, $2::jsonb)
            on conflict (id) do update set doc = excluded.doc
            """,
            user_id,
            to_json({**document, "id": user_id}),
        )

    def _build_apps_query(
        self,
        selector: Selector,
        options: QueryOptions | None,
        *,
        force_limit: int | None = None,
    ) -> tuple[str, list[Any]]:
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        try:
            where_sql = compile_where(selector, bind)
            order_by_sql = compile_order_by(options, bind)
            _, skip, limit = parse_options(options)
        except InvalidSelectorError as exc:
            raise RepositoryValidationError(str(exc)) from exc

        if force_limit is not None:
            limit = force_limit if limit is None else min(limit, force_limit)
        limit_sql = f"limit {bind(limit)}" if limit is not None else ""
        offset_sql = f"offset {bind(skip)}" if skip else ""

        query = f"""
            select id, doc
            from apps
            where {where_sql}
            order by {order_by_sql}
            {limit_sql}
            {offset_sql}
            """
        return query, params

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("APPSTORE_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _require_id(document: dict[str, Any]) -> str:
        value = document.get("id")
        if not isinstance(value, str) or not value:
            raise RepositoryValidationError("document id is required")
        return value

    @classmethod
    def _document_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        document = cls._coerce_json_dict(row["doc"])
        document["id"] = row["id"]
        return document

    @classmethod
    def _category_row_to_dict(cls, row: asyncpg.Record) -> dict[str, Any]:
        document = cls._coerce_json_dict(row["doc"])
        document["name"] = row["name"]
        document.setdefault("position", row["position"])
        return document

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return dict(value)
        return {}


@lru_cache
def get_repository():
    settings = get_settings()
    if settings.catalog_backend == "memory":
        from app.services.store import InMemoryStore

        return InMemoryStore.with_sample_catalog()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
