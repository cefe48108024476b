"""
clubhouse.policy.filters — Storage-Agnostic Query Predicates
=============================================================

List endpoints all need the same things: a handful of exact-match
filters, an optional date range, a free-text search, the visibility tier
restriction, and pagination.  This module expresses those as plain data
(:class:`Predicate` = conjunction of clauses) so that

* :mod:`clubhouse.services.query` can compile them to SQLAlchemy, and
* :meth:`Predicate.matches` can evaluate them against in-memory records.

Pagination input comes straight from query strings and is coerced
leniently: malformed values fall back to defaults, nothing here raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from clubhouse.policy.clock import as_utc

__all__ = [
    "Between",
    "DEFAULT_LIMIT",
    "DEFAULT_PAGE",
    "Equals",
    "MAX_LIMIT",
    "NotAfter",
    "NotExpired",
    "OneOf",
    "Page",
    "Pagination",
    "Predicate",
    "TextSearch",
    "build_filter",
    "normalize_tags",
    "paginate",
]

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


# ---------------------------------------------------------------------------
# Clause variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True, slots=True)
class OneOf:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class Between:
    """``lower <= field <= upper``; either bound may be ``None``."""
    field: str
    lower: datetime | None = None
    upper: datetime | None = None


@dataclass(frozen=True, slots=True)
class NotExpired:
    """``field IS NULL OR field > now``."""
    field: str
    now: datetime


@dataclass(frozen=True, slots=True)
class NotAfter:
    """``field <= now`` (e.g. scheduled publish date has passed)."""
    field: str
    now: datetime


@dataclass(frozen=True, slots=True)
class TextSearch:
    """Case-insensitive substring over *fields*, or any tag containing *term*."""
    fields: tuple[str, ...]
    term: str
    tag_field: str | None = None


Clause = Equals | OneOf | Between | NotExpired | NotAfter | TextSearch


def _get(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _clause_matches(clause: Clause, record: Any) -> bool:
    value = _get(record, clause.field) if not isinstance(clause, TextSearch) else None

    if isinstance(clause, Equals):
        return value == clause.value
    if isinstance(clause, OneOf):
        return value in clause.values
    if isinstance(clause, Between):
        if value is None:
            return False
        value = as_utc(value)
        if clause.lower is not None and value < as_utc(clause.lower):
            return False
        if clause.upper is not None and value > as_utc(clause.upper):
            return False
        return True
    if isinstance(clause, NotExpired):
        return value is None or as_utc(value) > as_utc(clause.now)
    if isinstance(clause, NotAfter):
        return value is not None and as_utc(value) <= as_utc(clause.now)
    if isinstance(clause, TextSearch):
        needle = clause.term.lower()
        for name in clause.fields:
            text = _get(record, name)
            if text and needle in str(text).lower():
                return True
        if clause.tag_field:
            tags = _get(record, clause.tag_field) or ()
            return any(needle in str(tag).lower() for tag in tags)
        return False
    raise TypeError(f"Unknown clause: {clause!r}")


# ---------------------------------------------------------------------------
# Predicate — conjunction of clauses
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Predicate:
    clauses: tuple[Clause, ...] = ()

    def and_(self, *others: Predicate | Clause) -> Predicate:
        """Return a new predicate with *others* added conjunctively."""
        extra: list[Clause] = []
        for other in others:
            if isinstance(other, Predicate):
                extra.extend(other.clauses)
            else:
                extra.append(other)
        return Predicate(self.clauses + tuple(extra))

    def matches(self, record: Any) -> bool:
        return all(_clause_matches(c, record) for c in self.clauses)

    def filter(self, records: Iterable[T]) -> list[T]:
        return [r for r in records if self.matches(r)]

    def __bool__(self) -> bool:
        return bool(self.clauses)


def normalize_tags(tags: Iterable[Any] | None) -> list[str]:
    """Lower-cased, stripped tags; blanks dropped.  Stored tags match searches."""
    return [str(t).strip().lower() for t in (tags or []) if str(t).strip()]


def build_filter(
    *,
    exact: Mapping[str, Any] | None = None,
    date_field: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    search_fields: Sequence[str] = (),
    tag_field: str | None = None,
    visibility: Predicate | None = None,
    expiry_field: str | None = None,
    publish_field: str | None = None,
    now: datetime | None = None,
) -> Predicate:
    """Compose a conjunctive predicate from request filters.

    Only exact-match fields with a truthy value are added.  The visibility
    predicate (see :func:`clubhouse.policy.visibility.list_filter_for`)
    is folded in as-is.
    """
    clauses: list[Clause] = []
    for name, value in (exact or {}).items():
        if value not in (None, ""):
            clauses.append(Equals(name, value))
    if date_field and (date_from is not None or date_to is not None):
        clauses.append(Between(date_field, date_from, date_to))
    if search and search.strip() and search_fields:
        clauses.append(TextSearch(tuple(search_fields), search.strip(), tag_field))
    if now is not None:
        if expiry_field:
            clauses.append(NotExpired(expiry_field, now))
        if publish_field:
            clauses.append(NotAfter(publish_field, now))
    predicate = Predicate(tuple(clauses))
    if visibility is not None:
        predicate = predicate.and_(visibility)
    return predicate


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
def _coerce_int(raw: Any, default: int) -> int:
    if raw is None or isinstance(raw, bool):
        return default
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @classmethod
    def from_params(
        cls,
        page: Any = None,
        limit: Any = None,
        *,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ) -> Pagination:
        """Lenient coercion from query-string values.  Never raises."""
        p = _coerce_int(page, DEFAULT_PAGE)
        n = _coerce_int(limit, default_limit)
        if p < 1:
            p = DEFAULT_PAGE
        if n < 1:
            n = default_limit
        return cls(page=p, limit=min(n, max_limit))

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    has_next: bool = field(init=False)
    has_prev: bool = field(init=False)

    def __post_init__(self) -> None:
        skip = (self.page - 1) * self.limit
        self.has_next = skip + self.limit < self.total
        self.has_prev = self.page > 1

    def meta(self) -> dict:
        """Pagination block for JSON envelopes."""
        out: dict[str, Any] = {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }
        if self.has_next:
            out["next"] = {"page": self.page + 1, "limit": self.limit}
        if self.has_prev:
            out["prev"] = {"page": self.page - 1, "limit": self.limit}
        return out


def paginate(items: Sequence[T], pagination: Pagination) -> Page[T]:
    """Slice an in-memory sequence into a :class:`Page`."""
    window = list(items[pagination.skip:pagination.skip + pagination.limit])
    return Page(items=window, total=len(items), page=pagination.page, limit=pagination.limit)
