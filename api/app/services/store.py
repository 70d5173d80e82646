from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from app.services.repository import RepositoryValidationError
from app.services.selectors import InvalidSelectorError, QueryOptions, Selector, apply_options, matches


class InMemoryStore:
    """Catalog backend for local development and tests."""

    def __init__(
        self,
        apps: Iterable[dict[str, Any]] = (),
        categories: Iterable[dict[str, Any]] = (),
        users: Iterable[dict[str, Any]] = (),
    ) -> None:
        self.apps: dict[str, dict[str, Any]] = {}
        self.categories: list[dict[str, Any]] = []
        self.users: dict[str, dict[str, Any]] = {}
        for app in apps:
            self.apps[app["id"]] = copy.deepcopy(app)
        for position, category in enumerate(categories):
            self.categories.append({"position": position, **copy.deepcopy(category)})
        for user in users:
            self.users[user["id"]] = copy.deepcopy(user)

    @classmethod
    def with_sample_catalog(cls) -> InMemoryStore:
        now = datetime.now(timezone.utc)
        return cls(
            apps=[
                {
                    "id": "etherpad",
                    "name": "Etherpad",
                    "author": "sample-author",
                    "categories": ["Productivity"],
                    "install_count": 120,
                    "install_count_this_week": 8,
                    "created_at": now - timedelta(days=90),
                    "last_updated": now - timedelta(days=3),
                    "approval": "approved",
                    "versions": [
                        {"number": "1.0.0", "date_time": now - timedelta(days=90)},
                        {"number": "1.1.0", "date_time": now - timedelta(days=3)},
                    ],
                },
                {
                    "id": "wekan",
                    "name": "Wekan",
                    "author": "sample-author",
                    "categories": ["Productivity", "Office"],
                    "install_count": 75,
                    "install_count_this_week": 12,
                    "created_at": now - timedelta(days=30),
                    "last_updated": now - timedelta(days=10),
                    "approval": "approved",
                    "versions": [{"number": "0.9.0", "date_time": now - timedelta(days=10)}],
                },
            ],
            categories=[{"name": "Productivity"}, {"name": "Office"}, {"name": "Games"}],
        )

    async def close(self) -> None:
        return None

    async def find_apps(self, selector: Selector | None, options: QueryOptions | None = None) -> list[dict[str, Any]]:
        try:
            rows = [app for app in self._ordered_apps() if matches(app, selector)]
            rows = apply_options(rows, options)
        except InvalidSelectorError as exc:
            raise RepositoryValidationError(str(exc)) from exc
        return [copy.deepcopy(row) for row in rows]

    async def find_one_app(self, selector: Selector | None, options: QueryOptions | None = None) -> dict[str, Any] | None:
        rows = await self.find_apps(selector, options)
        return rows[0] if rows else None

    async def get_app(self, app_id: str) -> dict[str, Any] | None:
        app = self.apps.get(app_id)
        return copy.deepcopy(app) if app is not None else None

    async def list_categories(self) -> list[dict[str, Any]]:
        rows = sorted(self.categories, key=lambda row: (row.get("position", 0), row["name"]))
        return copy.deepcopy(rows)

    async def find_category(self, name: str) -> dict[str, Any] | None:
        for category in self.categories:
            if category["name"] == name:
                return copy.deepcopy(category)
        return None

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user is not None else None

    async def upsert_app(self, document: dict[str, Any]) -> None:
        self.apps[document["id"]] = copy.deepcopy(document)

    async def upsert_category(self, document: dict[str, Any], *, position: int = 0) -> None:
        self.categories = [row for row in self.categories if row["name"] != document["name"]]
        self.categories.append({**copy.deepcopy(document), "position": position})

    async def upsert_user(self, document: dict[str, Any]) -> None:
        self.users[document["id"]] = copy.deepcopy(document)

    def _ordered_apps(self) -> list[dict[str, Any]]:
        # Unsorted queries come back in id order, matching the postgres tie-break.
        return [self.apps[app_id] for app_id in sorted(self.apps)]
