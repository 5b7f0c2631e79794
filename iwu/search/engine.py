"""
In-memory search, filtering, sorting and pagination over record lists.

Used by the API list endpoints. Everything here is pure; inputs are never
mutated and all sorts are stable.
"""

import math
import re
from dataclasses import dataclass
from numbers import Number
from typing import Any, Dict, List, Mapping, Optional, Sequence

DEFAULT_MIN_SCORE = 0.3
DEFAULT_PAGE_SIZE = 20

EXACT_MATCH_SCORE = 1.0
WORD_MATCH_SCORE = 0.5
FUZZY_MATCH_SCORE = 0.2


def get_nested_value(item: Any, path: str) -> Any:
    """Resolve a dot path (``target_entity.name``); missing segments give None."""
    current = item
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            return None
    return current


def _fuzzy_pattern(word: str) -> "re.Pattern":
    # characters in order, anything in between
    return re.compile(".*".join(re.escape(ch) for ch in word), re.IGNORECASE)


class SearchEngine:
    """Scored full-text search over selected fields."""

    def __init__(self):
        self._index: List[Dict[str, Any]] = []

    def build_index(self, items: Sequence[Dict[str, Any]], fields: Sequence[str]) -> None:
        """Precompute the lowercase search text of every item."""
        self._index = []
        for item in items:
            parts = []
            for field in fields:
                value = get_nested_value(item, field)
                parts.append(value.lower() if isinstance(value, str) else "")
            self._index.append({"item": item, "text": " ".join(parts)})

    def score(self, text: str, query: str, fuzzy: bool = True) -> float:
        term = query.lower()
        words = [w for w in term.split(" ") if w]

        score = EXACT_MATCH_SCORE if term and term in text else 0.0
        for word in words:
            if word in text:
                score += WORD_MATCH_SCORE
            if fuzzy and _fuzzy_pattern(word).search(text):
                score += FUZZY_MATCH_SCORE
        return score

    def search(self, query: str, fuzzy: bool = True, min_score: float = DEFAULT_MIN_SCORE) -> List[Dict[str, Any]]:
        """
        Items scoring at least ``min_score``, best first.

        Scoring: +1.0 if the whole query occurs, +0.5 per query word that
        occurs, +0.2 per word whose characters occur in order. Ties keep
        index order.
        """
        scored = []
        for entry in self._index:
            score = self.score(entry["text"], query, fuzzy=fuzzy)
            if score >= min_score:
                scored.append((score, entry["item"]))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [item for _, item in scored]


def _is_inactive(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, set)) and len(value) == 0)


def _is_range(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and set(value) <= {"min", "max"}


def _matches(item: Mapping[str, Any], key: str, expected: Any) -> bool:
    if _is_range(expected):
        actual = get_nested_value(item, key)
        try:
            number = float(actual)
        except (TypeError, ValueError):
            return False
        if expected.get("min") is not None and number < expected["min"]:
            return False
        if expected.get("max") is not None and number > expected["max"]:
            return False
        return True

    if isinstance(expected, Mapping):
        nested = get_nested_value(item, key)
        return isinstance(nested, Mapping) and _matches_all(nested, expected)

    actual = get_nested_value(item, key)

    if isinstance(expected, (list, tuple, set)):
        if isinstance(actual, (list, tuple, set)):
            return any(v in actual for v in expected)
        return actual in expected

    if isinstance(expected, bool):
        return actual is expected

    if isinstance(expected, str):
        return actual is not None and expected.lower() in str(actual).lower()

    return actual == expected


def _matches_all(item: Mapping[str, Any], criteria: Mapping[str, Any]) -> bool:
    return all(_matches(item, key, value) for key, value in criteria.items() if not _is_inactive(value))


def apply_filters(items: Sequence[Dict[str, Any]], criteria: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    AND-combine criteria over ``items``.

    Criteria values:
        str: case-insensitive substring
        list: any-of (against a scalar, or overlapping a list field)
        bool: equality
        {"min": x, "max": y}: numeric range, either bound optional
        other dict: criteria for a nested object
        anything else: exact match
    None, "" and empty lists are ignored.
    """
    return [item for item in items if _matches_all(item, criteria)]


def _sort_key(value: Any):
    if isinstance(value, Number) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, str(value).lower())


def sort_items(items: Sequence[Dict[str, Any]], field: str, direction: str = "asc") -> List[Dict[str, Any]]:
    """
    Stable sort by a dot-path field.

    Numbers compare numerically, everything else as lowercase strings.
    Missing values go last when ascending and first when descending.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"direction must be 'asc' or 'desc', got {direction!r}")

    present = [item for item in items if get_nested_value(item, field) is not None]
    missing = [item for item in items if get_nested_value(item, field) is None]

    present = sorted(present, key=lambda item: _sort_key(get_nested_value(item, field)), reverse=direction == "desc")
    return present + missing if direction == "asc" else missing + present


@dataclass
class Page:
    """One page of results."""
    items: List[Any]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "page": self.page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


def paginate(items: Sequence[Any], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    """
    Slice ``items`` into a 1-indexed page.

    Pages past the end are empty rather than an error.

    Raises:
        ValueError: If page or page_size is below 1
    """
    if page < 1 or page_size < 1:
        raise ValueError("page and page_size must be at least 1")

    start = (page - 1) * page_size
    end = start + page_size
    total = len(items)

    return Page(
        items=list(items[start:end]),
        page=page,
        page_size=page_size,
        total_items=total,
        total_pages=math.ceil(total / page_size),
        has_next=end < total,
        has_prev=page > 1,
    )


def query_items(
    items: Sequence[Dict[str, Any]],
    query: Optional[str] = None,
    fields: Sequence[str] = ("title",),
    criteria: Optional[Mapping[str, Any]] = None,
    sort_by: Optional[str] = None,
    direction: str = "asc",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page:
    """Search, then filter, then sort, then paginate."""
    result: List[Dict[str, Any]] = list(items)
    if query:
        engine = SearchEngine()
        engine.build_index(result, fields)
        result = engine.search(query)
    if criteria:
        result = apply_filters(result, criteria)
    if sort_by:
        result = sort_items(result, sort_by, direction)
    return paginate(result, page, page_size)
