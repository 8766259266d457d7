"""Read queries shared by the remote and local code paths."""

from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

# Operators accepted inside a where-clause mapping, e.g. {"gte": "2024-01-01"}.
RANGE_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
    "neq": operator.ne,
}


@dataclass
class Query:
    """Filter, ordering and paging for a table read.

    ``where`` maps field names to a scalar (equality), a list/tuple/set
    (membership) or a mapping of RANGE_OPERATORS. None values are ignored.
    """

    where: dict[str, Any] = field(default_factory=dict)
    order_by: str | None = None
    ascending: bool = True
    limit: int | None = None
    offset: int | None = None

    @classmethod
    def coerce(cls, query: "Query | Mapping[str, Any] | None") -> "Query":
        """Build a Query from a Query, a plain mapping, or None."""
        if query is None:
            return cls()
        if isinstance(query, Query):
            return query
        if not isinstance(query, Mapping):
            raise TypeError(f"Unsupported query type: {type(query).__name__}")

        order_by = query.get("order_by", query.get("orderBy"))
        ascending = query.get("ascending")
        return cls(
            where=dict(query.get("where") or {}),
            order_by=order_by,
            ascending=ascending is not False,
            limit=query.get("limit"),
            offset=query.get("offset"),
        )

    def conditions(self) -> list[tuple[str, Any]]:
        """Where-clause items that actually constrain the result."""
        return [(key, value) for key, value in self.where.items() if value is not None]


def _match_value(actual: Any, expected: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return actual in expected
    if isinstance(expected, Mapping):
        for op_name, bound in expected.items():
            compare = RANGE_OPERATORS.get(op_name)
            if compare is None:
                raise ValueError(f"Unsupported filter operator: {op_name}")
            if bound is None:
                continue
            if actual is None:
                return False
            try:
                if not compare(actual, bound):
                    return False
            except TypeError:
                return False
        return True
    return actual == expected


def matches(record: Mapping[str, Any], query: Query) -> bool:
    """True if ``record`` satisfies every condition of ``query``."""
    return all(_match_value(record.get(key), value) for key, value in query.conditions())


def apply_query(records: list[dict[str, Any]], query: Query) -> list[dict[str, Any]]:
    """Filter, sort, offset and limit ``records`` in memory.

    Sorting is stable; records without the sort field always come last.
    """
    items = [record for record in records if matches(record, query)]

    if query.order_by:
        key = query.order_by
        present = [r for r in items if r.get(key) is not None]
        missing = [r for r in items if r.get(key) is None]
        try:
            present.sort(key=lambda r: r[key], reverse=not query.ascending)
        except TypeError:
            # Mixed value types; fall back to their string form
            present.sort(key=lambda r: str(r[key]), reverse=not query.ascending)
        items = present + missing

    if query.offset:
        items = items[query.offset:]
    if query.limit:
        items = items[: query.limit]

    return items
