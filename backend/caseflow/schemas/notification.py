from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    case_id: int | None
    entity_type: str | None
    entity_id: int | None
    type: str
    title: str
    message: str | None
    priority: str
    action_url: str | None
    action_text: str | None
    is_read: bool
    read_at: datetime | None
    # ORM attribute is metadata_, dumped responses carry metadata
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    trigger_user_id: int | None
    trigger_action: str | None
    expires_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread: int
    page: int
    limit: int
    pages: int


class UnreadSummaryResponse(BaseModel):
    urgent: int
    high: int
    normal: int
    low: int
    total: int


class MarkReadRequest(BaseModel):
    notification_ids: list[int] | None = None
