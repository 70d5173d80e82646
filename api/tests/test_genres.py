from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from app.services.genres import (
    EXTRA_GENRES,
    NO_CONTEXT,
    Computed,
    ExtraGenre,
    GenreContext,
    GenreListOptions,
    GenreResolver,
    Static,
    latest_version,
)
from app.services.store import InMemoryStore

EXTRA_NAMES = [genre.name for genre in EXTRA_GENRES]


def _ids(apps: list[dict]) -> list[str]:
    return [app["id"] for app in apps]


def test_category_forces_categories_over_caller_filter(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)
    caller_selector = {"categories": "Games", "approval": "approved"}

    apps = asyncio.run(resolver.find_in("Productivity", caller_selector))

    assert _ids(apps) == ["a1"]
    assert caller_selector == {"categories": "Games", "approval": "approved"}


def test_category_passes_caller_options_through(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    resolved = asyncio.run(resolver.resolve("Games", options={"sort": {"install_count": 1}}))
    apps = asyncio.run(resolver.find_in("Games", options={"sort": {"install_count": 1}}))

    assert resolved.selector == {"categories": "Games"}
    assert resolved.options == {"sort": {"install_count": 1}}
    assert _ids(apps) == ["a3", "a2"]


def test_all_returns_every_app(sample_store: InMemoryStore) -> None:
    apps = asyncio.run(GenreResolver(sample_store).find_in("All"))
    assert _ids(apps) == ["a1", "a2", "a3"]


def test_popular_orders_by_install_count_descending(sample_store: InMemoryStore) -> None:
    apps = asyncio.run(GenreResolver(sample_store).find_in("Popular"))
    assert _ids(apps) == ["a2", "a3", "a1"]


def test_static_sort_genres(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)
    assert _ids(asyncio.run(resolver.find_in("New"))) == ["a3", "a2", "a1"]
    assert _ids(asyncio.run(resolver.find_in("New & Updated"))) == ["a1", "a3", "a2"]
    assert _ids(asyncio.run(resolver.find_in("This Week"))) == ["a3", "a1", "a2"]


def test_genre_options_override_caller_options(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    resolved = asyncio.run(resolver.resolve("Popular", options={"sort": {"foo": 1}, "limit": 2}))
    apps = asyncio.run(resolver.find_in("Popular", options={"sort": {"foo": 1}, "limit": 2}))

    assert resolved.options == {"sort": {"install_count": -1}, "limit": 2}
    assert _ids(apps) == ["a2", "a3"]


def test_genre_selector_overrides_caller_selector(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    apps = asyncio.run(resolver.find_in("Apps By Me", {"author": "u2"}, context=GenreContext(user_id="u1")))

    assert _ids(apps) == ["a1", "a3"]


def test_installed_without_user_or_client_matches_nothing(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    resolved = asyncio.run(resolver.resolve("Installed"))
    apps = asyncio.run(resolver.find_in("Installed"))

    assert resolved.selector == {"id": {"$in": []}}
    assert apps == []


def test_installed_unions_client_ids_and_user_installs(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    client_only = GenreContext(client_installed_app_ids=["a2", "a2"])
    both = GenreContext(user_id="u2", client_installed_app_ids=["a3"])
    user_and_client = GenreContext(user_id="u1", client_installed_app_ids=["a2", "x9"])

    assert _ids(asyncio.run(resolver.find_in("Installed", context=client_only))) == ["a2"]
    assert _ids(asyncio.run(resolver.find_in("Installed", context=both))) == ["a3"]
    resolved = asyncio.run(resolver.resolve("Installed", context=user_and_client))
    assert resolved.selector == {"id": {"$in": ["a2", "x9", "a1", "a3"]}}


def test_apps_by_me_requires_a_user(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    assert _ids(asyncio.run(resolver.find_in("Apps By Me", context=GenreContext(user_id="u1")))) == ["a1", "a3"]
    assert asyncio.run(resolver.find_in("Apps By Me")) == []
    assert asyncio.run(resolver.find_in("Apps By Me", context=GenreContext(user_id="nobody"))) == []
    assert asyncio.run(resolver.find_one_in("Apps By Me")) is None


def test_apps_by_me_without_user_does_not_fall_back_to_caller_filter(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    resolved = asyncio.run(resolver.resolve("Apps By Me", {"approval": "approved"}))

    assert resolved.matches_nothing
    assert asyncio.run(resolver.find_in("Apps By Me", {"approval": "approved"})) == []


def test_update_classification_uses_strictly_older_boundary(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)
    context = GenreContext(user_id="u1")

    updates = asyncio.run(resolver.find_in("Updates Available", context=context))
    current = asyncio.run(resolver.find_in("No Updates", context=context))

    # a2 is installed at exactly its latest timestamp, a3 at a newer one.
    assert _ids(updates) == ["a1"]
    assert _ids(current) == ["a2", "a3"]


def test_update_genres_without_user_signal_no_context(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)
    updates_genre = next(genre for genre in EXTRA_GENRES if genre.name == "Updates Available")

    signal = asyncio.run(updates_genre.selector.evaluate(sample_store, GenreContext()))

    assert signal is NO_CONTEXT
    assert asyncio.run(resolver.find_in("Updates Available")) == []
    assert asyncio.run(resolver.find_in("No Updates")) == []


def test_update_genres_skip_installs_missing_from_catalog(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)
    context = GenreContext(user_id="u3")

    assert asyncio.run(resolver.resolve("Updates Available", context=context)).selector == {"id": {"$in": []}}
    assert asyncio.run(resolver.resolve("No Updates", context=context)).selector == {"id": {"$in": []}}


def test_apps_by_author_prefers_context_then_route_param(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    from_route = GenreContext(route_params={"author_id": "u2"})
    explicit = GenreContext(author_id="u1", route_params={"author_id": "u2"})

    assert _ids(asyncio.run(resolver.find_in("Apps By Author", context=from_route))) == ["a2"]
    assert _ids(asyncio.run(resolver.find_in("Apps By Author", context=explicit))) == ["a1", "a3"]


def test_unknown_genre_resolves_to_empty_result(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    assert asyncio.run(resolver.find_in("Nope", {"approval": "approved"})) == []
    assert asyncio.run(resolver.find_one_in("Nope")) is None
    assert asyncio.run(resolver.get_one("Nope")) is None


def test_find_one_in_uses_resolved_sort(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    assert asyncio.run(resolver.find_one_in("Popular"))["id"] == "a2"
    assert asyncio.run(resolver.find_one_in("Games", {"approval": "pending"}))["id"] == "a3"
    assert asyncio.run(resolver.find_one_in("Games", {"approval": "rejected"})) is None


def test_get_all_lists_extra_genres_then_categories(sample_store: InMemoryStore) -> None:
    genres = asyncio.run(GenreResolver(sample_store).get_all())

    assert [genre.name for genre in genres] == EXTRA_NAMES + ["Productivity", "Games"]
    assert [genre.kind for genre in genres][-2:] == ["category", "category"]


def test_get_all_narrows_and_sorts(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    categories = asyncio.run(resolver.get_all(GenreListOptions(where={"kind": "category"})))
    summaries = asyncio.run(resolver.get_all(GenreListOptions(filter=lambda genre: genre.show_summary)))
    by_priority = asyncio.run(resolver.get_all(GenreListOptions(iteratee=lambda genre: -genre.priority)))

    assert [genre.name for genre in categories] == ["Productivity", "Games"]
    assert [genre.name for genre in summaries] == ["Popular", "New & Updated"]
    assert [genre.name for genre in by_priority][:3] == ["Installed", "All", "New"]


def test_category_wins_name_collision() -> None:
    store = InMemoryStore(
        apps=[
            {"id": "a1", "categories": ["Popular"], "install_count": 1},
            {"id": "a2", "categories": [], "install_count": 9},
        ],
        categories=[{"name": "Popular", "priority": 3}],
    )
    resolver = GenreResolver(store)

    genre = asyncio.run(resolver.get_one("Popular"))

    assert genre is not None
    assert genre.kind == "category"
    assert genre.priority == 3
    assert _ids(asyncio.run(resolver.find_in("Popular"))) == ["a1"]


def test_get_populated_keeps_genres_with_matches(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    anonymous = asyncio.run(resolver.get_populated({"approval": "approved"}))
    signed_in = asyncio.run(resolver.get_populated({"approval": "approved"}, context=GenreContext(user_id="u1")))

    assert [genre.name for genre in anonymous] == [
        "All",
        "Popular",
        "New",
        "New & Updated",
        "This Week",
        "Productivity",
        "Games",
    ]
    assert {"Installed", "Updates Available", "No Updates", "Apps By Me"} <= {genre.name for genre in signed_in}


def test_get_populated_applies_list_options(sample_store: InMemoryStore) -> None:
    resolver = GenreResolver(sample_store)

    genres = asyncio.run(
        resolver.get_populated({"approval": "pending"}, list_options=GenreListOptions(where={"kind": "category"}))
    )

    assert [genre.name for genre in genres] == ["Productivity", "Games"]


def test_latest_version_picks_newest_timestamp() -> None:
    app = {
        "versions": [
            {"number": "2.0", "date_time": "2024-03-01T00:00:00Z"},
            {"number": "1.0", "date_time": "2024-01-01T00:00:00Z"},
            {"number": "broken", "date_time": "not-a-date"},
        ]
    }

    assert latest_version(app) == {"number": "2.0", "date_time": "2024-03-01T00:00:00Z"}
    assert latest_version({"versions": []}) is None


def test_recency_genres_order_mixed_offsets_chronologically() -> None:
    store = InMemoryStore(
        apps=[
            {"id": "early", "created_at": datetime(2024, 1, 1, 10, 0, tzinfo=timezone(timedelta(hours=5)))},
            {"id": "late", "created_at": datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc)},
            {"id": "naive", "created_at": datetime(2024, 1, 1, 5, 30)},
        ]
    )

    assert _ids(asyncio.run(GenreResolver(store).find_in("New"))) == ["late", "naive", "early"]


def test_computed_options_without_user_match_nothing(sample_store: InMemoryStore) -> None:
    async def my_sort(repository, context: GenreContext):
        if not context.user_id:
            return NO_CONTEXT
        return {"sort": {"install_count": -1}}

    genre = ExtraGenre(name="Mine By Installs", selector=Static({}), options=Computed(my_sort))
    resolver = GenreResolver(sample_store, extra_genres=(genre,))

    resolved = asyncio.run(resolver.resolve("Mine By Installs", {"approval": "approved"}))

    assert resolved.matches_nothing
    assert asyncio.run(resolver.find_in("Mine By Installs")) == []
    assert asyncio.run(resolver.find_one_in("Mine By Installs")) is None
    assert _ids(asyncio.run(resolver.find_in("Mine By Installs", context=GenreContext(user_id="u1")))) == [
        "a2",
        "a3",
        "a1",
    ]
