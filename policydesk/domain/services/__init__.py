"""Domain services."""

from policydesk.domain.services.charts import (
    ChartData,
    ChartDataset,
    coverage_bar,
    coverage_line,
    premium_pie,
    stacked_bar,
)
from policydesk.domain.services.pagination import PageCursor, Pagination, total_pages

__all__ = [
    "ChartData",
    "ChartDataset",
    "PageCursor",
    "Pagination",
    "coverage_bar",
    "coverage_line",
    "premium_pie",
    "stacked_bar",
    "total_pages",
]
