"""
clubhouse.services.query — Predicate → SQLAlchemy
==================================================

Compiles :class:`clubhouse.policy.filters.Predicate` clauses into
SQLAlchemy ``WHERE`` conditions and runs the count + page queries.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session

from clubhouse.policy.filters import (
    Between,
    Equals,
    NotAfter,
    NotExpired,
    OneOf,
    Page,
    Pagination,
    Predicate,
    TextSearch,
)

_LIKE_ESCAPE = "\\"


def _like_pattern(term: str) -> str:
    escaped = (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def _column(model: type, name: str):
    col = getattr(model, name, None)
    if col is None:
        raise AttributeError(f"{model.__name__} has no column {name!r}")
    return col


def compile_predicate(predicate: Predicate, model: type) -> list[Any]:
    """Translate every clause of *predicate* into a SQL condition on *model*."""
    conditions: list[Any] = []
    for clause in predicate.clauses:
        if isinstance(clause, Equals):
            conditions.append(_column(model, clause.field) == clause.value)
        elif isinstance(clause, OneOf):
            conditions.append(_column(model, clause.field).in_(clause.values))
        elif isinstance(clause, Between):
            col = _column(model, clause.field)
            if clause.lower is not None:
                conditions.append(col >= clause.lower)
            if clause.upper is not None:
                conditions.append(col <= clause.upper)
        elif isinstance(clause, NotExpired):
            col = _column(model, clause.field)
            conditions.append(or_(col.is_(None), col > clause.now))
        elif isinstance(clause, NotAfter):
            conditions.append(_column(model, clause.field) <= clause.now)
        elif isinstance(clause, TextSearch):
            pattern = _like_pattern(clause.term)
            options = [
                _column(model, name).ilike(pattern, escape=_LIKE_ESCAPE)
                for name in clause.fields
            ]
            if clause.tag_field:
                options.append(
                    cast(_column(model, clause.tag_field), String).ilike(
                        pattern, escape=_LIKE_ESCAPE
                    )
                )
            conditions.append(or_(*options))
        else:
            raise TypeError(f"Unknown clause: {clause!r}")
    return conditions


def fetch_page(
    session: Session,
    model: type,
    predicate: Predicate,
    pagination: Pagination,
    order_by: Sequence[Any] = (),
) -> Page:
    """Count matching rows and load one page of them."""
    conditions = compile_predicate(predicate, model)

    total = session.scalar(
        select(func.count()).select_from(model).where(*conditions)
    ) or 0
    rows = session.scalars(
        select(model)
        .where(*conditions)
        .order_by(*order_by)
        .offset(pagination.skip)
        .limit(pagination.limit)
    ).all()

    return Page(items=list(rows), total=total, page=pagination.page, limit=pagination.limit)
