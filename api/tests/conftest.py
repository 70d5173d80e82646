from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from app.services.store import InMemoryStore

BASE_TIME = datetime(2024, 1, 10, tzinfo=timezone.utc)


def day(offset: int) -> datetime:
    return BASE_TIME + timedelta(days=offset)


def sample_catalog() -> dict[str, list[dict[str, Any]]]:
    return {
        "apps": [
            {
                "id": "a1",
                "name": "Alpha",
                "author": "u1",
                "categories": ["Productivity"],
                "install_count": 10,
                "install_count_this_week": 5,
                "created_at": day(1),
                "last_updated": day(5),
                "approval": "approved",
                "versions": [
                    {"number": "1.0", "date_time": day(1)},
                    {"number": "1.1", "date_time": day(5)},
                ],
            },
            {
                "id": "a2",
                "name": "Beta",
                "author": "u2",
                "categories": ["Games"],
                "install_count": 50,
                "install_count_this_week": 1,
                "created_at": day(2),
                "last_updated": day(3),
                "approval": "approved",
                "versions": [{"number": "1.0", "date_time": day(3)}],
            },
            {
                "id": "a3",
                "name": "Gamma",
                "author": "u1",
                "categories": ["Productivity", "Games"],
                "install_count": 30,
                "install_count_this_week": 9,
                "created_at": day(4),
                "last_updated": day(4),
                "approval": "pending",
                "versions": [{"number": "0.1", "date_time": day(4)}],
            },
        ],
        "categories": [{"name": "Productivity"}, {"name": "Games"}],
        "users": [
            {
                "id": "u1",
                "installed_apps": {
                    "a1": {"version": {"number": "1.0", "date_time": day(1)}},
                    "a2": {"version": {"number": "1.0", "date_time": day(3)}},
                    "a3": {"version": {"number": "0.1", "date_time": day(6)}},
                },
            },
            {"id": "u2", "installed_apps": {}},
            {
                "id": "u3",
                "installed_apps": {"ghost": {"version": {"date_time": day(1)}}},
            },
        ],
    }


@pytest.fixture
def sample_store() -> InMemoryStore:
    catalog = sample_catalog()
    return InMemoryStore(apps=catalog["apps"], categories=catalog["categories"], users=catalog["users"])
