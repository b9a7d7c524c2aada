"""Pagination — clamp caller input into a page window, describe the result.

Learn: Callers never get rejected for odd paging input. Missing or zero
values fall back to defaults, everything else is clamped:

    page  → max(1, page)
    limit → min(max_page_size, max(1, limit))
    offset = (page - 1) * limit        # always ≥ 0
"""

import math
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


@dataclass(frozen=True)
class PageWindow:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def normalize_pagination(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    *,
    default_page_size: int = 10,
    max_page_size: int = 1000,
) -> PageWindow:
    page = max(1, page or 1)
    limit = min(max_page_size, max(1, limit or default_page_size))
    return PageWindow(page=page, limit=limit)


@dataclass
class PaginationResult(Generic[T]):
    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int = field(init=False)
    has_next: bool = field(init=False)
    has_previous: bool = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0
        self.has_next = self.page < self.total_pages
        self.has_previous = self.page > 1

    @classmethod
    def build(cls, data: list[T], total: int, window: PageWindow) -> "PaginationResult[T]":
        return cls(data=list(data), total=total, page=window.page, limit=window.limit)


class Page(BaseModel, Generic[T]):
    """Response schema for paginated endpoints: Page[PostRead], etc."""

    data: list[T]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_previous: bool

    model_config = {"from_attributes": True}
