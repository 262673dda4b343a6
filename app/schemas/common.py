# app/schemas/common.py - Shared request base and pagination envelope
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict

from app.repositories.base import page_meta

T = TypeVar("T")


class RequestModel(BaseModel):
    """Request bodies reject unknown fields"""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(BaseModel, Generic[T]):
    items: List[T]
    meta: PageMeta

    @classmethod
    def build(cls, items, page: int, limit: int, total: int, item_schema) -> "Page":
        return cls(
            items=[item_schema.model_validate(i) for i in items],
            meta=PageMeta(**page_meta(page, limit, total)),
        )
