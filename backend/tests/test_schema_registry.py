"""Tests for the case field registry."""
from caseflow.engine.schema import (
    CASE_FIELDS,
    CONFIDENTIALITY_LEVELS,
    SemanticType,
    _verify_registry,
    spec_of,
    type_of,
)
from caseflow.models.case import Case


def test_registry_matches_cases_table():
    columns = {c.name for c in Case.__table__.columns} - {"id"}
    assert set(CASE_FIELDS) == columns
    _verify_registry()


def test_id_is_not_writable():
    assert type_of("id") is None
    assert spec_of("id") is None


def test_semantic_types():
    assert type_of("status_id") is SemanticType.INTEGER
    assert type_of("title") is SemanticType.TEXT
    assert type_of("is_sensitive") is SemanticType.BOOLEAN
    assert type_of("due_date") is SemanticType.TIMESTAMP
    assert type_of("gps_lat") is SemanticType.DECIMAL
    assert type_of("no_such_field") is None


def test_constraints_are_declared():
    assert spec_of("confidentiality_level").choices == frozenset(CONFIDENTIALITY_LEVELS)
    assert spec_of("quality_score").maximum == 5
    assert spec_of("gps_lng").minimum == -180
    assert spec_of("title").choices is None
