from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from caseflow.models.base import Base, JSONType


class CaseComment(Base):
    __tablename__ = "case_comments"
    __table_args__ = (Index("idx_case_comments_case", "case_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    case_id: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    comment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidentiality_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="internal"
    )
    mentioned_users: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    tags: Mapped[str | None] = mapped_column(String(500), nullable=True)
    parent_comment_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_response: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    requires_follow_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    follow_up_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    follow_up_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    follow_up_completed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    edited_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    edit_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
