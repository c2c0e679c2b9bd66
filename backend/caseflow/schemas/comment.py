from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

CommentType = Literal[
    "internal",
    "external",
    "resolution",
    "escalation",
    "follow_up",
    "status_update",
    "assignment",
]


class CommentCreate(BaseModel):
    comment: str = Field(min_length=1)
    comment_type: CommentType = "internal"
    is_internal: bool = True
    is_public: bool = False
    confidentiality_level: Literal["public", "internal", "restricted", "confidential"] = "internal"
    mentioned_users: list[int] | None = None
    tags: str | None = None
    parent_comment_id: int | None = None
    requires_follow_up: bool = False
    follow_up_date: datetime | None = None


class CommentUpdate(BaseModel):
    comment: str = Field(min_length=1)
    edit_reason: str | None = None
    comment_type: CommentType | None = None
    requires_follow_up: bool | None = None


class CommentResponse(BaseModel):
    id: int
    case_id: int
    comment: str
    comment_type: str
    is_internal: bool
    is_public: bool
    confidentiality_level: str
    mentioned_users: list[int] | None
    tags: str | None
    parent_comment_id: int | None
    is_response: bool
    requires_follow_up: bool
    follow_up_date: datetime | None
    follow_up_completed: bool
    follow_up_completed_at: datetime | None
    follow_up_completed_by: int | None
    is_edited: bool
    edited_at: datetime | None
    edit_reason: str | None
    original_comment: str | None
    created_at: datetime
    created_by: int

    model_config = {"from_attributes": True}


class CommentListResponse(BaseModel):
    items: list[CommentResponse]
    total: int
    page: int
    limit: int
    pages: int


class CommentTypeCount(BaseModel):
    comment_type: str
    count: int
    pending_follow_ups: int


class CommentCountResponse(BaseModel):
    total: int
    by_type: list[CommentTypeCount]
