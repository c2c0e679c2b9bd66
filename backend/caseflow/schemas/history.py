from datetime import datetime

from pydantic import BaseModel


class HistoryEntryResponse(BaseModel):
    id: int
    case_id: int
    action_type: str
    field_name: str | None
    old_value: str | None
    new_value: str | None
    change_description: str | None
    comments: str | None
    assigned_to: int | None
    assigned_by: int | None
    status_id: int | None
    status_reason: str | None
    created_at: datetime
    created_by: int | None

    model_config = {"from_attributes": True}


class HistoryListResponse(BaseModel):
    items: list[HistoryEntryResponse]
    total: int
    page: int
    limit: int
    pages: int


class HistorySummaryItem(BaseModel):
    action_type: str
    count: int
    first_occurrence: datetime
    last_occurrence: datetime

    model_config = {"from_attributes": True}
