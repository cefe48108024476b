"""
tests/test_filters.py — Predicates & Pagination
================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from clubhouse.policy.filters import (
    Between,
    Equals,
    NotExpired,
    Page,
    Pagination,
    Predicate,
    TextSearch,
    build_filter,
    normalize_tags,
    paginate,
)
from clubhouse.policy.visibility import list_filter_for

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


# ===========================================================================
# Pagination coercion
# ===========================================================================
class TestPagination:
    def test_defaults(self):
        p = Pagination.from_params()
        assert (p.page, p.limit, p.skip) == (1, 10, 0)

    @pytest.mark.parametrize(
        ("page", "limit", "expected"),
        [
            ("2", "10", (2, 10)),
            ("0", "10", (1, 10)),
            ("-3", "5", (1, 5)),
            ("abc", "xyz", (1, 10)),
            ("1", "0", (1, 10)),
            ("1", "250", (1, 100)),
            (" 3 ", " 7 ", (3, 7)),
            (True, None, (1, 10)),
        ],
    )
    def test_lenient_coercion(self, page, limit, expected):
        p = Pagination.from_params(page, limit)
        assert (p.page, p.limit) == expected

    def test_custom_defaults(self):
        p = Pagination.from_params(None, "500", default_limit=20, max_limit=50)
        assert p.limit == 50
        assert Pagination.from_params(None, None, default_limit=20).limit == 20

    def test_skip(self):
        assert Pagination.from_params("3", "10").skip == 20


class TestPage:
    def test_middle_page(self):
        result = paginate(list(range(25)), Pagination.from_params("2", "10"))
        assert result.items == list(range(10, 20))
        assert result.has_prev and result.has_next

    def test_last_page(self):
        result = paginate(list(range(25)), Pagination.from_params("3", "10"))
        assert len(result.items) == 5
        assert result.has_prev
        assert not result.has_next

    def test_first_page(self):
        result = paginate(list(range(25)), Pagination.from_params("1", "10"))
        assert not result.has_prev
        assert result.has_next

    def test_beyond_last_page_is_empty(self):
        result = paginate(list(range(5)), Pagination.from_params("4", "10"))
        assert result.items == []
        assert result.total == 5
        assert not result.has_next

    def test_meta_links(self):
        meta = Page(items=[], total=25, page=2, limit=10).meta()
        assert meta["next"] == {"page": 3, "limit": 10}
        assert meta["prev"] == {"page": 1, "limit": 10}
        assert meta["total"] == 25

    def test_meta_omits_missing_links(self):
        meta = Page(items=[], total=3, page=1, limit=10).meta()
        assert "next" not in meta
        assert "prev" not in meta


# ===========================================================================
# Predicates
# ===========================================================================
class TestPredicate:
    def test_empty_predicate_matches_everything(self):
        assert Predicate().matches({"anything": 1})
        assert not Predicate()

    def test_and_combines(self):
        p = Predicate((Equals("status", "published"),)).and_(Equals("type", "training"))
        assert p.matches({"status": "published", "type": "training"})
        assert not p.matches({"status": "published", "type": "meeting"})

    def test_between_bounds_inclusive(self):
        clause = Between("start_date", NOW, NOW + timedelta(days=1))
        p = Predicate((clause,))
        assert p.matches({"start_date": NOW})
        assert p.matches({"start_date": NOW + timedelta(days=1)})
        assert not p.matches({"start_date": NOW - timedelta(seconds=1)})
        assert not p.matches({"start_date": None})

    def test_between_accepts_naive_values(self):
        p = Predicate((Between("start_date", NOW, None),))
        assert p.matches({"start_date": datetime(2026, 6, 2)})

    def test_not_expired(self):
        p = Predicate((NotExpired("expire_at", NOW),))
        assert p.matches({"expire_at": None})
        assert p.matches({"expire_at": NOW + timedelta(minutes=1)})
        assert not p.matches({"expire_at": NOW})

    def test_text_search_case_insensitive_and_tags(self):
        p = Predicate((TextSearch(("title", "content"), "BLOOD", "tags"),))
        assert p.matches({"title": "Blood drive", "content": "", "tags": []})
        assert p.matches({"title": "Drive", "content": "", "tags": ["blood-bank"]})
        assert not p.matches({"title": "Drive", "content": "", "tags": ["cpr"]})

    def test_filter_list(self):
        p = Predicate((Equals("status", "published"),))
        rows = [{"status": "published"}, {"status": "draft"}]
        assert p.filter(rows) == [{"status": "published"}]


class TestBuildFilter:
    def test_skips_blank_exact_values(self):
        p = build_filter(exact={"status": "published", "type": None, "priority": ""})
        assert p.clauses == (Equals("status", "published"),)

    def test_blank_search_ignored(self):
        p = build_filter(search="   ", search_fields=("title",))
        assert not p

    def test_full_listing_filter(self):
        p = build_filter(
            exact={"status": "published"},
            search="drive",
            search_fields=("title",),
            tag_field="tags",
            visibility=list_filter_for(None),
            expiry_field="expire_at",
            publish_field="publish_at",
            now=NOW,
        )
        visible = {
            "status": "published",
            "title": "Blood drive",
            "tags": [],
            "visibility": "public",
            "expire_at": None,
            "publish_at": NOW - timedelta(hours=1),
        }
        assert p.matches(visible)
        assert not p.matches({**visible, "visibility": "members_only"})
        assert not p.matches({**visible, "expire_at": NOW - timedelta(hours=1)})
        assert not p.matches({**visible, "publish_at": NOW + timedelta(hours=1)})


class TestNormalizeTags:
    def test_lowercases_strips_and_drops_blanks(self):
        assert normalize_tags(["  Blood ", "", "   ", "CPR"]) == ["blood", "cpr"]

    def test_none_is_empty(self):
        assert normalize_tags(None) == []
