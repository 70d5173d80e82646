#!/usr/bin/env python3
"""Emit deterministic SQL for the catalog tables and optional seed documents."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

SCHEMA_SQL = """create table if not exists apps (
  id text primary key,
  doc jsonb not null
);

create table if not exists categories (
  name text primary key,
  position integer not null default 0,
  doc jsonb not null default '{}'::jsonb
);

create table if not exists users (
  id text primary key,
  doc jsonb not null
);

create index if not exists apps_doc_gin on apps using gin (doc jsonb_path_ops);
"""


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _jsonb(document: dict[str, Any]) -> str:
    return f"{_quote_sql(json.dumps(document, sort_keys=True, separators=(',', ':')))}::jsonb"


def render_sql(fixture: dict[str, Any], *, schema_only: bool = False) -> str:
    statements = ["-- App store catalog schema", SCHEMA_SQL]
    if schema_only:
        return "\n".join(statements)

    for position, category in enumerate(fixture.get("categories", [])):
        name = category["name"]
        statements.append(
            "insert into categories (name, position, doc)\n"
            f"values ({_quote_sql(name)}, {position}, {_jsonb(category)})\n"
            "on conflict (name) do update set position = excluded.position, doc = excluded.doc;\n"
        )

    for table in ("apps", "users"):
        for document in sorted(fixture.get(table, []), key=lambda row: row["id"]):
            statements.append(
                f"insert into {table} (id, doc)\n"
                f"values ({_quote_sql(document['id'])}, {_jsonb(document)})\n"
                "on conflict (id) do update set doc = excluded.doc;\n"
            )
    return "\n".join(statements)


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to create and seed the app store catalog.")
    parser.add_argument("fixture", nargs="?", type=Path, help="JSON file with categories, apps and users")
    parser.add_argument("--schema-only", action="store_true", help="Emit only the DDL")
    args = parser.parse_args()

    if args.fixture is None and not args.schema_only:
        parser.error("a fixture is required unless --schema-only is given")

    fixture: dict[str, Any] = {}
    if args.fixture is not None:
        fixture = json.loads(args.fixture.read_text(encoding="utf-8"))

    print(render_sql(fixture, schema_only=args.schema_only))


if __name__ == "__main__":
    main()
