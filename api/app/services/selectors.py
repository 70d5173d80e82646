"""Document selector language shared by the catalog backends.

A selector is a dict of top-level field names to either a literal value or an
operator dict (``$eq``, ``$ne``, ``$in``, ``$nin``, ``$exists``). A literal
matches equal values and, when the stored field is a list, lists containing
the value. ``None`` as a selector matches nothing; ``{}`` matches everything.

Options support ``sort`` (dict or list of ``(field, direction)`` pairs),
``skip`` and ``limit``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any

Selector = dict[str, Any]
QueryOptions = dict[str, Any]

FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
FIELD_OPERATORS = {"$eq", "$ne", "$in", "$nin", "$exists"}
OPTION_KEYS = {"sort", "skip", "limit"}
SORT_DIRECTIONS = {1: 1, -1: -1, "asc": 1, "desc": -1}


class InvalidSelectorError(ValueError):
    """Raised when a selector or options dict uses unsupported syntax."""


def matches(document: Mapping[str, Any], selector: Selector | None) -> bool:
    if selector is None:
        return False
    for field, condition in _iter_conditions(selector):
        present = field in document
        value = document.get(field)
        if not _field_matches(value, present, condition):
            return False
    return True


def apply_options(documents: Iterable[Mapping[str, Any]], options: QueryOptions | None) -> list[Mapping[str, Any]]:
    sort, skip, limit = parse_options(options)
    rows = list(documents)
    # Stable sorts applied from the least to the most significant key.
    for field, direction in reversed(sort):
        rows.sort(key=lambda doc, name=field: _sort_key(doc.get(name)), reverse=direction < 0)
    rows = rows[skip:]
    if limit is not None:
        rows = rows[:limit]
    return rows


def parse_options(options: QueryOptions | None) -> tuple[list[tuple[str, int]], int, int | None]:
    if not options:
        return [], 0, None
    unknown = set(options) - OPTION_KEYS
    if unknown:
        raise InvalidSelectorError(f"unsupported query options: {sorted(unknown)}")

    sort = _parse_sort(options.get("sort"))

    skip = options.get("skip") or 0
    if not isinstance(skip, int) or isinstance(skip, bool) or skip < 0:
        raise InvalidSelectorError("skip must be a non-negative integer")

    limit = options.get("limit")
    if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 0):
        raise InvalidSelectorError("limit must be a non-negative integer")
    return sort, skip, limit


def compile_where(selector: Selector | None, bind: Callable[[Any], str], *, column: str = "doc") -> str:
    """Compile a selector into a SQL boolean expression over a jsonb column."""
    if selector is None:
        return "false"

    conditions: list[str] = []
    for field, condition in _iter_conditions(selector):
        path = f"{column} -> {bind(field)}::text"
        if _is_operator_dict(condition):
            for operator, operand in condition.items():
                conditions.append(_compile_operator(path, column, field, operator, operand, bind))
        else:
            conditions.append(_compile_equals(path, condition, bind))
    return " and ".join(conditions) if conditions else "true"


def compile_order_by(options: QueryOptions | None, bind: Callable[[Any], str], *, column: str = "doc") -> str:
    sort, _, _ = parse_options(options)
    clauses = []
    for field, direction in sort:
        if direction > 0:
            clauses.append(f"{column} -> {bind(field)}::text asc nulls first")
        else:
            clauses.append(f"{column} -> {bind(field)}::text desc nulls last")
    clauses.append("id asc")
    return ", ".join(clauses)


def to_json(value: Any) -> str:
    return json.dumps(value, default=_json_default, separators=(",", ":"))


def _iter_conditions(selector: Selector) -> Iterable[tuple[str, Any]]:
    if not isinstance(selector, Mapping):
        raise InvalidSelectorError("selector must be a mapping")
    for field, condition in selector.items():
        if not isinstance(field, str) or not FIELD_NAME_RE.match(field):
            raise InvalidSelectorError(f"unsupported selector field: {field!r}")
        if _is_operator_dict(condition):
            unknown = set(condition) - FIELD_OPERATORS
            if unknown:
                raise InvalidSelectorError(f"unsupported selector operators: {sorted(unknown)}")
            for operator in ("$in", "$nin"):
                if operator in condition and not isinstance(condition[operator], (list, tuple, set, frozenset)):
                    raise InvalidSelectorError(f"{operator} requires a list")
        yield field, condition


def _is_operator_dict(condition: Any) -> bool:
    if not isinstance(condition, Mapping) or not condition:
        return False
    dollar_keys = [key for key in condition if isinstance(key, str) and key.startswith("$")]
    if dollar_keys and len(dollar_keys) != len(condition):
        raise InvalidSelectorError("cannot mix operators and literal keys")
    return bool(dollar_keys)


def _field_matches(value: Any, present: bool, condition: Any) -> bool:
    if not _is_operator_dict(condition):
        return _equals(value, condition)

    for operator, operand in condition.items():
        if operator == "$eq" and not _equals(value, operand):
            return False
        if operator == "$ne" and _equals(value, operand):
            return False
        if operator == "$in" and not any(_equals(value, candidate) for candidate in operand):
            return False
        if operator == "$nin" and any(_equals(value, candidate) for candidate in operand):
            return False
        if operator == "$exists" and present != bool(operand):
            return False
    return True


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compile_equals(path: str, expected: Any, bind: Callable[[Any], str]) -> str:
    if expected is None:
        return f"coalesce(jsonb_typeof({path}), 'null') = 'null'"
    if isinstance(expected, (list, tuple, Mapping)):
        return f"coalesce({path} = {bind(to_json(expected))}::jsonb, false)"
    # jsonb containment covers both scalar equality and list membership.
    return f"coalesce({path} @> {bind(to_json(expected))}::jsonb, false)"


def _compile_operator(
    path: str,
    column: str,
    field: str,
    operator: str,
    operand: Any,
    bind: Callable[[Any], str],
) -> str:
    if operator == "$eq":
        return _compile_equals(path, operand, bind)
    if operator == "$ne":
        return f"not ({_compile_equals(path, operand, bind)})"
    if operator in {"$in", "$nin"}:
        options = [_compile_equals(path, candidate, bind) for candidate in operand]
        any_sql = "(" + " or ".join(options) + ")" if options else "false"
        return any_sql if operator == "$in" else f"not {any_sql}"
    # $exists
    exists_sql = f"({column} ? {bind(field)}::text)"
    return exists_sql if operand else f"not {exists_sql}"


def _parse_sort(raw: Any) -> list[tuple[str, int]]:
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        pairs = []
        for item in raw:
            if isinstance(item, str):
                pairs.append((item, 1))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                pairs.append((item[0], item[1]))
            else:
                raise InvalidSelectorError(f"unsupported sort entry: {item!r}")
    else:
        raise InvalidSelectorError("sort must be a mapping or a list")

    parsed: list[tuple[str, int]] = []
    for field, direction in pairs:
        if not isinstance(field, str) or not FIELD_NAME_RE.match(field):
            raise InvalidSelectorError(f"unsupported sort field: {field!r}")
        if isinstance(direction, bool) or direction not in SORT_DIRECTIONS:
            raise InvalidSelectorError(f"unsupported sort direction for {field}: {direction!r}")
        parsed.append((field, SORT_DIRECTIONS[direction]))
    return parsed


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first ascending; values of different types group by type.
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (4, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, (datetime, date)):
        return (2, _isoformat_utc(value))
    return (5, to_json(value))


def _isoformat_utc(value: date) -> str:
    """ISO string in UTC; naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        return value.isoformat()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return _isoformat_utc(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
