from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.models.base import Base


class Case(Base):
    __tablename__ = "cases"
    __table_args__ = (
        UniqueConstraint("case_number", name="uq_cases_case_number"),
        Index("idx_cases_status", "status_id"),
        Index("idx_cases_assigned_to", "assigned_to"),
        Index("idx_cases_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    case_number: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    case_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolved_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Classification
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    priority_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status_id: Mapped[int] = mapped_column(Integer, nullable=False)
    channel_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Impact
    impact_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    urgency_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    affected_beneficiaries: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Programme links
    program_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    activity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_project_related: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Provider
    provider_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    individual_provider_gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    individual_provider_age_group: Mapped[str | None] = mapped_column(String(20), nullable=True)
    individual_provider_disability_status: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )
    group_provider_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    group_provider_gender_composition: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    provider_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    provider_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    provider_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_organization: Mapped[str | None] = mapped_column(String(200), nullable=True)
    provider_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Consent / privacy
    data_sharing_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_contact_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    privacy_policy_accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_anonymized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidentiality_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="internal"
    )

    # Location
    community_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    coordinates: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gps_lat: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    gps_lng: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)

    # Assignment
    assigned_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    assignment_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Submission
    submitted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    submitted_by_initials: Mapped[str | None] = mapped_column(String(10), nullable=True)
    submitted_by_confirmation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_by_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Processing
    first_response_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_activity_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    escalation_level: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    escalated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Resolution
    resolution_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    resolution_satisfaction: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Follow-up / monitoring
    follow_up_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    monitoring_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    monitoring_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Quality review
    quality_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quality_reviewed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quality_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    quality_score: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    quality_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Free-form metadata
    tags: Mapped[str | None] = mapped_column(String(500), nullable=True)
    attachments: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_references: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Audit
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)


class CaseHistory(Base):
    __tablename__ = "case_history"
    __table_args__ = (Index("idx_case_history_case", "case_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    case_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    field_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_to: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignment_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
