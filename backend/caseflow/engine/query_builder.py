"""
Parameterized statement construction for the ``cases`` table.

Every value is coerced to its registry type before it is bound; fields the
registry does not know are dropped with a debug log, never raised. Search
criteria are a flat mapping (typically straight from a query string):

    build_search({
        "search": "water",
        "status_id": "1",
        "statuses": "1,2,3",
        "created_at_from": "2026-01-01",
        "sort_by": "priority",
        "sort_order": "asc",
        "page": 2,
        "limit": 50,
    })
"""
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import Insert, Select, Update, func, insert, or_, select, update
from sqlalchemy.sql.elements import ColumnElement

from caseflow.core.errors import ValidationError
from caseflow.engine.schema import CASE_FIELDS, FieldSpec, SemanticType
from caseflow.models.case import Case
from caseflow.models.lookup import CaseCategory, CaseChannel, CasePriority, CaseStatus

logger = logging.getLogger(__name__)

TRUTHY = frozenset({True, "true", "1", 1})

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

# ---------------------------------------------------------------------------
# Search vocabulary
# ---------------------------------------------------------------------------
SEARCHABLE_FIELDS: tuple[ColumnElement, ...] = (
    Case.title,
    Case.description,
    Case.case_number,
    Case.provider_name,
    Case.provider_email,
    Case.tags,
    Case.resolution_summary,
    CaseCategory.name,
    CaseChannel.name,
)

FILTER_FIELDS: tuple[str, ...] = (
    "id",
    "case_number",
    "category_id",
    "priority_id",
    "status_id",
    "channel_id",
    "urgency_level",
    "confidentiality_level",
    "program_id",
    "project_id",
    "activity_id",
    "community_id",
    "provider_type_id",
    "assigned_to",
    "assigned_by",
    "submitted_by",
    "created_by",
    "escalation_level",
    "is_project_related",
    "is_sensitive",
    "is_anonymized",
    "is_public",
    "data_sharing_consent",
    "follow_up_consent",
    "privacy_policy_accepted",
    "follow_up_required",
    "monitoring_required",
    "quality_reviewed",
)

DATE_RANGE_FIELDS: tuple[str, ...] = (
    "case_date",
    "due_date",
    "resolved_date",
    "submitted_at",
    "assigned_at",
    "escalated_at",
    "created_at",
    "updated_at",
    "last_activity_date",
    "follow_up_date",
    "monitoring_date",
    "quality_reviewed_at",
)

ARRAY_FILTERS: dict[str, str] = {
    "categories": "category_id",
    "priorities": "priority_id",
    "statuses": "status_id",
    "channels": "channel_id",
    "urgency_levels": "urgency_level",
    "confidentiality_levels": "confidentiality_level",
    "communities": "community_id",
    "programs": "program_id",
    "projects": "project_id",
    "activities": "activity_id",
}

SORT_FIELDS: dict[str, ColumnElement] = {
    "id": Case.id,
    "case_number": Case.case_number,
    "title": Case.title,
    "case_date": Case.case_date,
    "due_date": Case.due_date,
    "resolved_date": Case.resolved_date,
    "priority": CasePriority.level,
    "status": CaseStatus.name,
    "category": CaseCategory.name,
    "urgency_level": Case.urgency_level,
    "escalation_level": Case.escalation_level,
    "created_at": Case.created_at,
    "updated_at": Case.updated_at,
    "submitted_at": Case.submitted_at,
    "assigned_at": Case.assigned_at,
    "last_activity_date": Case.last_activity_date,
}
DEFAULT_SORT = "created_at"

_CONTROL_KEYS = frozenset({"search", "page", "limit", "sort_by", "sort_order", "impossible"})
_ID_SPEC = FieldSpec(SemanticType.INTEGER, minimum=1)


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not a whole number")
    if isinstance(value, str):
        value = value.strip()
    return int(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    result = Decimal(str(value).strip())
    if not result.is_finite():
        raise ValueError(f"{value!r} is not a finite number")
    return result


def _to_boolean(value: Any) -> bool:
    return value in TRUTHY


def _to_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise TypeError(f"cannot interpret {type(value).__name__} as a timestamp")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _to_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


_COERCERS = {
    SemanticType.INTEGER: _to_integer,
    SemanticType.DECIMAL: _to_decimal,
    SemanticType.BOOLEAN: _to_boolean,
    SemanticType.TIMESTAMP: _to_timestamp,
    SemanticType.TEXT: _to_text,
}


def _check_constraints(field_name: str, spec: FieldSpec, value: Any) -> None:
    if spec.choices is not None and value not in spec.choices:
        raise ValidationError(
            f"Invalid value for field {field_name}: must be one of {sorted(spec.choices)}",
            field=field_name,
        )
    if spec.minimum is not None and value < spec.minimum:
        raise ValidationError(
            f"Invalid value for field {field_name}: must be >= {spec.minimum}",
            field=field_name,
        )
    if spec.maximum is not None and value > spec.maximum:
        raise ValidationError(
            f"Invalid value for field {field_name}: must be <= {spec.maximum}",
            field=field_name,
        )


def coerce_value(field_name: str, value: Any, spec: FieldSpec | None = None) -> Any:
    """Coerce one value to the registry type of ``field_name``."""
    spec = spec or CASE_FIELDS.get(field_name)
    if spec is None:
        raise ValidationError(f"Unknown case field {field_name}", field=field_name)
    try:
        coerced = _COERCERS[spec.type](value)
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise ValidationError(
            f"Type conversion error for field {field_name}: {exc}", field=field_name
        ) from exc
    _check_constraints(field_name, spec, coerced)
    return coerced


def coerce_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Keep registered, non-null fields and coerce each to its registry type."""
    coerced: dict[str, Any] = {}
    for name, value in data.items():
        if name not in CASE_FIELDS:
            logger.debug("Dropping unknown case field %s", name)
            continue
        if value is None:
            continue
        coerced[name] = coerce_value(name, value)
    return coerced


# ---------------------------------------------------------------------------
# Insert / update
# ---------------------------------------------------------------------------

def build_insert(data: Mapping[str, Any]) -> Insert:
    values = coerce_fields(data)
    if not values:
        raise ValidationError("No valid case fields supplied")
    return insert(Case).values(**values)


def build_update(case_id: int, data: Mapping[str, Any]) -> Update:
    """UPDATE of the given fields on a case that has not been soft-deleted."""
    values = coerce_fields(data)
    if not values:
        raise ValidationError("No valid case fields supplied")
    return (
        update(Case)
        .where(Case.id == case_id, Case.is_deleted.is_(False))
        .values(**values)
    )


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class CaseQuery:
    statement: Select
    count_statement: Select
    page: Page
    filters: dict[str, Any] = field(default_factory=dict)
    search_term: str | None = None


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value) or default
    except (TypeError, ValueError):
        return default


def clamp_page(
    page: Any = None,
    limit: Any = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> Page:
    page_no = max(1, _parse_int(page, 1))
    size = min(max_limit, max(1, _parse_int(limit, default_limit)))
    return Page(page=page_no, limit=size)


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def _split(value: Any) -> Iterable[Any]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [v for v in value if not _is_blank(v)]
    return [value]


def _date_only(value: Any) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def _exact_conditions(criteria: Mapping[str, Any], applied: dict[str, Any]) -> list[ColumnElement]:
    conditions = []
    for name in FILTER_FIELDS:
        value = criteria.get(name)
        if _is_blank(value):
            continue
        spec = _ID_SPEC if name == "id" else CASE_FIELDS[name]
        conditions.append(getattr(Case, name) == coerce_value(name, value, spec))
        applied[name] = value
    return conditions


def _range_conditions(criteria: Mapping[str, Any], applied: dict[str, Any]) -> list[ColumnElement]:
    conditions = []
    for name in DATE_RANGE_FIELDS:
        column = getattr(Case, name)
        lower = criteria.get(f"{name}_from")
        upper = criteria.get(f"{name}_to")
        if not _is_blank(lower):
            conditions.append(column >= coerce_value(name, lower))
            applied[f"{name}_from"] = lower
        if not _is_blank(upper):
            bound = coerce_value(name, upper)
            if _date_only(upper):
                # inclusive of the whole day
                conditions.append(column < bound + timedelta(days=1))
            else:
                conditions.append(column <= bound)
            applied[f"{name}_to"] = upper
    return conditions


def _array_conditions(criteria: Mapping[str, Any], applied: dict[str, Any]) -> list[ColumnElement]:
    conditions = []
    for key, name in ARRAY_FILTERS.items():
        raw = criteria.get(key)
        if _is_blank(raw):
            continue
        values = [coerce_value(name, item) for item in _split(raw)]
        if values:
            conditions.append(getattr(Case, name).in_(values))
            applied[key] = values
    return conditions


def _search_condition(term: str) -> ColumnElement:
    return or_(*(column.icontains(term, autoescape=True) for column in SEARCHABLE_FIELDS))


def _order_by(sort_by: Any, sort_order: Any) -> tuple[ColumnElement, ...]:
    column = SORT_FIELDS.get(sort_by) if isinstance(sort_by, str) else None
    if column is None:
        return SORT_FIELDS[DEFAULT_SORT].desc(), Case.id.desc()
    ascending = isinstance(sort_order, str) and sort_order.lower() == "asc"
    return (column.asc() if ascending else column.desc()), Case.id.desc()


def _joined(statement: Select) -> Select:
    return (
        statement.outerjoin(CaseCategory, CaseCategory.id == Case.category_id)
        .outerjoin(CaseChannel, CaseChannel.id == Case.channel_id)
        .outerjoin(CasePriority, CasePriority.id == Case.priority_id)
        .outerjoin(CaseStatus, CaseStatus.id == Case.status_id)
    )


def build_search(
    criteria: Mapping[str, Any],
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> CaseQuery:
    """Data + count statements for a filtered, sorted, paginated case search."""
    page = clamp_page(criteria.get("page"), criteria.get("limit"), default_limit, max_limit)
    applied: dict[str, Any] = {}

    conditions: list[ColumnElement] = [Case.is_deleted.is_(False)]
    term = criteria.get("search")
    term = term.strip() if isinstance(term, str) else None
    if term:
        conditions.append(_search_condition(term))
    conditions += _exact_conditions(criteria, applied)
    conditions += _range_conditions(criteria, applied)
    conditions += _array_conditions(criteria, applied)

    ignored = set(criteria) - _CONTROL_KEYS - set(applied)
    if ignored:
        logger.debug("Ignoring unsupported search criteria: %s", sorted(ignored))

    statement = (
        _joined(select(Case))
        .where(*conditions)
        .order_by(*_order_by(criteria.get("sort_by"), criteria.get("sort_order")))
        .offset(page.offset)
        .limit(page.limit)
    )
    count_statement = _joined(select(func.count(Case.id)).select_from(Case)).where(*conditions)
    return CaseQuery(
        statement=statement,
        count_statement=count_statement,
        page=page,
        filters=applied,
        search_term=term or None,
    )
