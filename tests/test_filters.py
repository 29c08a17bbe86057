"""Tests for the shared filter, ordering and paging rules."""

from clinicrm.db.filters import (
    OrderBy,
    apply_filters,
    apply_ordering,
    match_row,
    normalize_filters,
    page_range,
    paginate,
    sort_rows,
)
from clinicrm.models import PatientStatus


class RecordingQuery:
    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method


class TestNormalize:

    def test_operator_per_value_shape(self):
        predicates = normalize_filters({
            "status": ["Cold", PatientStatus.BOOKED],
            "name": "sara*",
            "doctor_id": "doc-1",
        })
        assert ("status", "in", ["Cold", "Booked"]) in predicates
        assert ("name", "ilike", "sara%") in predicates
        assert ("doctor_id", "eq", "doc-1") in predicates

    def test_empty_values_are_dropped(self):
        assert normalize_filters({"status": [], "name": "", "doctor_id": None}) == []

    def test_enum_equality(self):
        assert normalize_filters({"status": PatientStatus.COLD}) == [("status", "eq", "Cold")]


class TestBuilders:

    def test_apply_filters(self):
        query = apply_filters(RecordingQuery(), {"status": ["Cold"], "name": "%a%"})
        assert [c[0] for c in query.calls] == ["in_", "ilike"]

    def test_ordering_adds_id_tie_break(self):
        query = apply_ordering(RecordingQuery(), OrderBy("created_at", ascending=False))
        assert query.calls == [
            ("order", ("created_at",), {"desc": True}),
            ("order", ("id",), {}),
        ]

    def test_ordering_by_id_only(self):
        query = apply_ordering(RecordingQuery(), OrderBy("id", ascending=False))
        assert query.calls == [("order", ("id",), {"desc": True})]

    def test_default_ordering(self):
        assert apply_ordering(RecordingQuery(), None).calls == [("order", ("id",), {})]

    def test_page_range(self):
        assert page_range(0, 10) == (0, 9)
        assert page_range(2, 25) == (50, 74)


class TestInMemory:

    rows = [
        {"id": "3", "name": "Sara Khan", "status": "Cold", "age": 40},
        {"id": "1", "name": "John Doe", "status": "Pending", "age": 30},
        {"id": "2", "name": "sarah lee", "status": "Cold", "age": None},
    ]

    def test_match_row(self):
        assert match_row(self.rows[0], {"status": "Cold", "name": "sara*"})
        assert match_row(self.rows[2], {"name": "SARA%"})
        assert not match_row(self.rows[1], {"status": ["Cold", "Booked"]})

    def test_pattern_underscore_matches_one_char(self):
        assert match_row({"name": "Sam"}, {"name": "S_m%"})
        assert not match_row({"name": "Sm"}, {"name": "S_m%"})

    def test_sort_rows_nulls_last_ascending_first_descending(self):
        ordered = sort_rows(self.rows, OrderBy("age"))
        assert [r["id"] for r in ordered] == ["1", "3", "2"]
        ordered = sort_rows(self.rows, OrderBy("age", ascending=False))
        assert [r["id"] for r in ordered] == ["2", "3", "1"]

    def test_sort_ties_break_on_id(self):
        ordered = sort_rows(self.rows, OrderBy("status"))
        assert [r["id"] for r in ordered] == ["2", "3", "1"]

    def test_sort_without_order(self):
        assert [r["id"] for r in sort_rows(self.rows, None)] == ["1", "2", "3"]

    def test_paginate(self):
        rows = [{"id": str(i)} for i in range(7)]
        assert paginate(rows, 1, 3) == rows[3:6]
        assert paginate(rows, 3, 3) == []
