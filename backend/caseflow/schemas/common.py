"""Shared schema utilities."""
from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


class CountResponse(BaseModel):
    message: str
    count: int


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
