from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UrgencyLevel = Literal["low", "medium", "high", "critical"]
ConfidentialityLevel = Literal["public", "internal", "restricted", "confidential"]


class CaseCreate(BaseModel):
    """
    New case. Any other case column may be supplied as an extra field; it is
    coerced against the field registry and unknown names are dropped.
    """

    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    category_id: int
    priority_id: int
    status_id: int
    channel_id: int
    case_date: datetime | None = None
    due_date: datetime | None = None
    urgency_level: UrgencyLevel | None = None
    confidentiality_level: ConfidentialityLevel | None = None
    impact_description: str | None = None
    affected_beneficiaries: int | None = Field(default=None, ge=0)
    assigned_to: int | None = None
    provider_name: str | None = None
    provider_email: str | None = None
    provider_phone: str | None = None
    location: str | None = None
    tags: str | None = None
    comments: str | None = None


class CaseUpdate(BaseModel):
    """Partial update; null and empty-string values are ignored."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    description: str | None = None
    category_id: int | None = None
    priority_id: int | None = None
    status_id: int | None = None
    channel_id: int | None = None
    due_date: datetime | None = None
    urgency_level: UrgencyLevel | None = None
    confidentiality_level: ConfidentialityLevel | None = None
    assigned_to: int | None = None
    resolution_summary: str | None = None
    resolved_date: datetime | None = None
    tags: str | None = None

    # Audit metadata
    comments: str | None = None
    status_reason: str | None = None


class AssignRequest(BaseModel):
    assigned_to: int
    comments: str | None = None
    due_date: datetime | None = None


class StatusChangeRequest(BaseModel):
    status_id: int
    reason: str | None = None
    comments: str | None = None
    resolved: bool = False
    resolution_summary: str | None = None


class EscalateRequest(BaseModel):
    reason: str = Field(min_length=1)
    escalated_to: int | None = None
    priority_id: int | None = None


class CaseResponse(BaseModel):
    id: int
    case_number: str
    title: str
    description: str
    case_date: datetime
    due_date: datetime | None
    resolved_date: datetime | None
    category_id: int
    priority_id: int
    status_id: int
    channel_id: int
    urgency_level: str | None
    confidentiality_level: str
    impact_description: str | None
    affected_beneficiaries: int | None
    provider_name: str | None
    provider_email: str | None
    location: str | None
    gps_lat: Decimal | None
    gps_lng: Decimal | None
    assigned_to: int | None
    assigned_by: int | None
    assigned_at: datetime | None
    submitted_by: int | None
    submitted_at: datetime | None
    escalation_level: int
    escalated_at: datetime | None
    escalation_reason: str | None
    resolution_summary: str | None
    last_activity_date: datetime | None
    tags: str | None
    created_at: datetime
    created_by: int | None
    updated_at: datetime
    updated_by: int | None
    is_active: bool

    model_config = {"from_attributes": True}


class FieldChangeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Any = Field(alias="from")
    to: Any


class CaseUpdateResponse(BaseModel):
    case: CaseResponse
    changed: bool
    changes: dict[str, FieldChangeResponse]
    message: str


class SearchPagination(BaseModel):
    page: int
    limit: int
    offset: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SearchInfo(BaseModel):
    query: str | None
    fields: list[str]
    results_count: int


class CaseListResponse(BaseModel):
    data: list[CaseResponse]
    pagination: SearchPagination
    filters: dict[str, Any]
    search: SearchInfo
