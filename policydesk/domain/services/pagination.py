"""Pagination window arithmetic for range-based queries."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Pagination:
    """A 1-indexed page of ``limit`` rows."""

    page: int = 1
    limit: int = 10

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def range(self) -> tuple[int, int]:
        """Closed row range ``[offset, offset + limit - 1]``."""
        return self.offset, self.offset + self.limit - 1

    def total_pages(self, row_count: int | None) -> int:
        return total_pages(row_count, self.limit)


def total_pages(row_count: int | None, limit: int) -> int:
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    return math.ceil((row_count or 0) / limit)


@dataclass(slots=True)
class PageCursor:
    """Current page of a paginated view."""

    current_page: int = 1
    total_pages: int = 0

    def can_go_to(self, page: int) -> bool:
        return 1 <= page <= self.total_pages and page != self.current_page

    def go_to_page(self, page: int) -> bool:
        """Move to ``page`` if it exists; returns whether the page changed."""
        if self.can_go_to(page):
            self.current_page = page
            return True
        return False

    def next_page(self) -> bool:
        return self.go_to_page(self.current_page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self.current_page - 1)
