"""
Schema registry for the ``cases`` table.

CASE_FIELDS is the single source of truth for which case fields may be written
or filtered on, what semantic type each one carries, and which range or
enumeration constraints apply. Keys are the column names of ``Case``; the
registry is checked against the ORM table when this module is imported, so a
typo here fails at startup rather than on the first request.

    >>> type_of("status_id")
    <SemanticType.INTEGER: 'integer'>
    >>> type_of("no_such_field") is None
    True
"""
from dataclasses import dataclass
from enum import Enum

from caseflow.models.case import Case


class SemanticType(str, Enum):
    INTEGER = "integer"
    TEXT = "text"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DECIMAL = "decimal"


@dataclass(frozen=True)
class FieldSpec:
    type: SemanticType
    choices: frozenset[str] | None = None
    minimum: float | None = None
    maximum: float | None = None


def _integer(minimum: float | None = None, maximum: float | None = None) -> FieldSpec:
    return FieldSpec(SemanticType.INTEGER, minimum=minimum, maximum=maximum)


def _text(*choices: str) -> FieldSpec:
    return FieldSpec(SemanticType.TEXT, choices=frozenset(choices) if choices else None)


def _decimal(minimum: float, maximum: float) -> FieldSpec:
    return FieldSpec(SemanticType.DECIMAL, minimum=minimum, maximum=maximum)


_BOOLEAN = FieldSpec(SemanticType.BOOLEAN)
_TIMESTAMP = FieldSpec(SemanticType.TIMESTAMP)

URGENCY_LEVELS = ("low", "medium", "high", "critical")
CONFIDENTIALITY_LEVELS = ("public", "internal", "restricted", "confidential")

CASE_FIELDS: dict[str, FieldSpec] = {
    "case_number": _text(),
    "title": _text(),
    "description": _text(),
    "case_date": _TIMESTAMP,
    "due_date": _TIMESTAMP,
    "resolved_date": _TIMESTAMP,
    # Classification
    "category_id": _integer(),
    "priority_id": _integer(),
    "status_id": _integer(),
    "channel_id": _integer(),
    # Impact
    "impact_description": _text(),
    "urgency_level": _text(*URGENCY_LEVELS),
    "affected_beneficiaries": _integer(minimum=0),
    # Programme links
    "program_id": _integer(),
    "project_id": _integer(),
    "activity_id": _integer(),
    "is_project_related": _BOOLEAN,
    # Provider
    "provider_type_id": _integer(),
    "individual_provider_gender": _text("male", "female", "other", "prefer_not_to_say"),
    "individual_provider_age_group": _text(
        "under_18", "18-25", "26-35", "36-50", "51-65", "over_65"
    ),
    "individual_provider_disability_status": _text(
        "none", "physical", "visual", "hearing", "cognitive", "multiple", "prefer_not_to_say"
    ),
    "group_provider_size": _integer(minimum=0),
    "group_provider_gender_composition": _text(),
    "provider_name": _text(),
    "provider_email": _text(),
    "provider_phone": _text(),
    "provider_organization": _text(),
    "provider_address": _text(),
    # Consent / privacy
    "data_sharing_consent": _BOOLEAN,
    "follow_up_consent": _BOOLEAN,
    "follow_up_contact_method": _text("email", "phone", "in_person", "sms", "none"),
    "privacy_policy_accepted": _BOOLEAN,
    "is_sensitive": _BOOLEAN,
    "is_anonymized": _BOOLEAN,
    "is_public": _BOOLEAN,
    "confidentiality_level": _text(*CONFIDENTIALITY_LEVELS),
    # Location
    "community_id": _integer(),
    "location": _text(),
    "coordinates": _text(),
    "gps_lat": _decimal(-90, 90),
    "gps_lng": _decimal(-180, 180),
    # Assignment
    "assigned_to": _integer(),
    "assigned_by": _integer(),
    "assigned_at": _TIMESTAMP,
    "assignment_comments": _text(),
    # Submission
    "submitted_by": _integer(),
    "submitted_at": _TIMESTAMP,
    "submitted_by_initials": _text(),
    "submitted_by_confirmation": _BOOLEAN,
    "submitted_by_comments": _text(),
    # Processing
    "first_response_date": _TIMESTAMP,
    "last_activity_date": _TIMESTAMP,
    "escalation_level": _integer(minimum=0),
    "escalated_at": _TIMESTAMP,
    "escalated_by": _integer(),
    "escalation_reason": _text(),
    # Resolution
    "resolution_summary": _text(),
    "resolution_category": _text(
        "resolved", "closed_no_action", "referred", "duplicate", "withdrawn"
    ),
    "resolution_satisfaction": _text(
        "very_satisfied", "satisfied", "neutral", "dissatisfied", "very_dissatisfied"
    ),
    # Follow-up / monitoring
    "follow_up_required": _BOOLEAN,
    "follow_up_date": _TIMESTAMP,
    "monitoring_required": _BOOLEAN,
    "monitoring_date": _TIMESTAMP,
    # Quality review
    "quality_reviewed": _BOOLEAN,
    "quality_reviewed_by": _integer(),
    "quality_reviewed_at": _TIMESTAMP,
    "quality_score": _integer(minimum=0, maximum=5),
    "quality_comments": _text(),
    # Free-form metadata
    "tags": _text(),
    "attachments": _text(),
    "external_references": _text(),
    # Audit
    "created_at": _TIMESTAMP,
    "created_by": _integer(),
    "updated_at": _TIMESTAMP,
    "updated_by": _integer(),
    "is_active": _BOOLEAN,
    "is_deleted": _BOOLEAN,
    "deleted_at": _TIMESTAMP,
    "deleted_by": _integer(),
}


def spec_of(field_name: str) -> FieldSpec | None:
    return CASE_FIELDS.get(field_name)


def type_of(field_name: str) -> SemanticType | None:
    """Semantic type of a case field, or None when the field is not writable."""
    spec = CASE_FIELDS.get(field_name)
    return spec.type if spec is not None else None


def _verify_registry() -> None:
    columns = {c.name for c in Case.__table__.columns} - {"id"}
    unknown = set(CASE_FIELDS) - columns
    unregistered = columns - set(CASE_FIELDS)
    if unknown or unregistered:
        raise RuntimeError(
            "Case field registry out of sync with the cases table: "
            f"unknown={sorted(unknown)} unregistered={sorted(unregistered)}"
        )


_verify_registry()
