"""
Tests for value coercion and statement construction.

These run without a database; search behaviour against real rows is covered
in test_case_repository.py.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from caseflow.core.errors import ValidationError
from caseflow.engine.query_builder import (
    MAX_LIMIT,
    Page,
    build_insert,
    build_search,
    build_update,
    clamp_page,
    coerce_fields,
    coerce_value,
)


# ---------------------------------------------------------------------------
# coerce_value
# ---------------------------------------------------------------------------

def test_integer_from_string():
    assert coerce_value("status_id", "3") == 3
    assert coerce_value("status_id", " 4 ") == 4
    assert coerce_value("status_id", 5.0) == 5


@pytest.mark.parametrize("value", ["abc", True, 2.5, [1]])
def test_integer_rejects_non_integers(value):
    with pytest.raises(ValidationError) as exc_info:
        coerce_value("status_id", value)
    assert exc_info.value.field == "status_id"
    assert "Type conversion error for field status_id" in str(exc_info.value)


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), ("true", True), ("1", True), (1, True), ("yes", False), (0, False), ("false", False)],
)
def test_boolean_truthy_set(value, expected):
    assert coerce_value("is_sensitive", value) is expected


def test_decimal_in_range():
    assert coerce_value("gps_lat", "12.5") == Decimal("12.5")
    assert coerce_value("gps_lng", -179) == Decimal("-179")


@pytest.mark.parametrize("field_name, value", [("gps_lat", "90.5"), ("gps_lng", "-181")])
def test_decimal_out_of_range(field_name, value):
    with pytest.raises(ValidationError) as exc_info:
        coerce_value(field_name, value)
    assert exc_info.value.field == field_name


def test_decimal_rejects_nan():
    with pytest.raises(ValidationError):
        coerce_value("gps_lat", "NaN")


def test_timestamp_forms():
    assert coerce_value("due_date", "2026-03-14") == datetime(2026, 3, 14)
    assert coerce_value("due_date", date(2026, 3, 14)) == datetime(2026, 3, 14)
    assert coerce_value("due_date", "2026-03-14T09:30:00") == datetime(2026, 3, 14, 9, 30)


def test_timestamp_with_offset_is_normalised_to_naive_utc():
    assert coerce_value("due_date", "2026-03-14T11:30:00+02:00") == datetime(2026, 3, 14, 9, 30)
    assert coerce_value("due_date", "2026-03-14T09:30:00Z") == datetime(2026, 3, 14, 9, 30)


def test_timestamp_rejects_garbage():
    with pytest.raises(ValidationError):
        coerce_value("due_date", "next tuesday")
    with pytest.raises(ValidationError):
        coerce_value("due_date", 12345)


def test_enumerated_text():
    assert coerce_value("urgency_level", "high") == "high"
    with pytest.raises(ValidationError) as exc_info:
        coerce_value("urgency_level", "urgent")
    assert exc_info.value.field == "urgency_level"


def test_integer_bounds():
    assert coerce_value("quality_score", "5") == 5
    with pytest.raises(ValidationError):
        coerce_value("quality_score", 6)
    with pytest.raises(ValidationError):
        coerce_value("affected_beneficiaries", -1)


def test_text_stringifies():
    assert coerce_value("title", 42) == "42"


def test_unknown_field_is_a_validation_error():
    with pytest.raises(ValidationError):
        coerce_value("not_a_field", "x")


# ---------------------------------------------------------------------------
# coerce_fields / insert / update
# ---------------------------------------------------------------------------

def test_coerce_fields_drops_unknown_and_null():
    coerced = coerce_fields(
        {"title": "Broken pump", "status_id": "2", "nickname": "pumpy", "due_date": None}
    )
    assert coerced == {"title": "Broken pump", "status_id": 2}


def test_build_update_requires_a_known_field():
    with pytest.raises(ValidationError):
        build_update(1, {})
    with pytest.raises(ValidationError):
        build_update(1, {"nickname": "pumpy"})


def test_build_insert_requires_a_known_field():
    with pytest.raises(ValidationError):
        build_insert({"nickname": "pumpy"})


def test_build_update_binds_coerced_values():
    stmt = build_update(7, {"status_id": "3", "nickname": "x"})
    params = stmt.compile().params
    assert params["status_id"] == 3
    assert "nickname" not in params


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def test_clamp_page_defaults():
    assert clamp_page() == Page(page=1, limit=20)
    assert clamp_page("abc", "xyz") == Page(page=1, limit=20)


def test_clamp_page_bounds():
    assert clamp_page(0, 500) == Page(page=1, limit=MAX_LIMIT)
    assert clamp_page(-3, -5) == Page(page=1, limit=1)
    assert clamp_page("3", "10").offset == 20


# ---------------------------------------------------------------------------
# build_search
# ---------------------------------------------------------------------------

def test_build_search_records_applied_filters():
    query = build_search(
        {
            "search": "  water ",
            "status_id": "3",
            "statuses": "1, 2",
            "created_at_to": "2026-03-14",
            "favourite_colour": "blue",
            "page": "2",
            "limit": "5",
        }
    )
    assert query.search_term == "water"
    assert query.filters == {
        "status_id": "3",
        "created_at_to": "2026-03-14",
        "statuses": [1, 2],
    }
    assert query.page == Page(page=2, limit=5)


def test_build_search_accepts_list_values():
    query = build_search({"urgency_levels": ["high", "critical"]})
    assert query.filters == {"urgency_levels": ["high", "critical"]}


def test_build_search_blank_values_are_ignored():
    query = build_search({"search": "   ", "status_id": "", "statuses": []})
    assert query.search_term is None
    assert query.filters == {}


def test_build_search_rejects_invalid_filter_value():
    with pytest.raises(ValidationError):
        build_search({"status_id": "open"})
    with pytest.raises(ValidationError):
        build_search({"urgency_levels": "high,urgent"})


def test_build_search_respects_configured_limits():
    query = build_search({"limit": 500}, default_limit=10, max_limit=50)
    assert query.page.limit == 50
    assert build_search({}, default_limit=10).page.limit == 10
