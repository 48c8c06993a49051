"""
Chart view-models derived from aggregate report rows.

Every function here is pure and total: empty or partial input still yields a
structurally valid chart (labels plus datasets of matching length).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime
from itertools import cycle, islice
from typing import Any

from policydesk.domain.models import (
    CoverageByType,
    MonthlyCoverage,
    PolicyCountByTypeStatus,
    PremiumByType,
)

POLICY_TYPES: tuple[str, ...] = ("life", "health", "auto")
POLICY_STATUSES: tuple[str, ...] = ("active", "lapsed", "cancelled")

STATUS_COLORS: dict[str, str] = {
    "active": "#4ADE80",
    "lapsed": "#FACC15",
    "cancelled": "#F87171",
}
PIE_COLORS: tuple[str, ...] = ("#60A5FA", "#34D399", "#FBBF24")
PIE_BORDERS: tuple[str, ...] = ("#3B82F6", "#10B981", "#F59E0B")

COVERAGE_LABEL = "Total Coverage ($)"
PREMIUM_LABEL = "Total Premium ($)"


@dataclass(slots=True)
class ChartDataset:
    label: str
    data: list[float]
    background_color: str | list[str] = "#3b82f6"
    border_color: str | list[str] | None = None
    border_width: int | None = None
    fill: bool | None = None
    tension: float | None = None


@dataclass(slots=True)
class ChartData:
    labels: list[str] = field(default_factory=list)
    datasets: list[ChartDataset] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        """Renderer-friendly dict without unset styling keys."""
        return {
            "labels": list(self.labels),
            "datasets": [
                {key: value for key, value in asdict(dataset).items() if value is not None}
                for dataset in self.datasets
            ],
        }


def stacked_bar(
    rows: Sequence[PolicyCountByTypeStatus],
    types: Sequence[str] = POLICY_TYPES,
    statuses: Sequence[str] = POLICY_STATUSES,
) -> ChartData:
    """Policy counts by type, one stacked series per status.

    Missing (type, status) combinations count as 0 so the grid is always
    ``len(statuses) x len(types)``. Empty ``rows`` therefore give the full
    zero grid rather than empty series.
    """
    counts: dict[tuple[str, str], int] = {}
    for row in rows:
        counts.setdefault((row.type, row.status), row.count)

    datasets = [
        ChartDataset(
            label=status,
            data=[counts.get((policy_type, status), 0) for policy_type in types],
            background_color=STATUS_COLORS.get(status, "#9CA3AF"),
        )
        for status in statuses
    ]
    return ChartData(labels=list(types), datasets=datasets)


def coverage_line(rows: Sequence[MonthlyCoverage]) -> ChartData:
    """Monthly total coverage as a filled line, in backend row order."""
    return ChartData(
        labels=[month_abbreviation(row.month) for row in rows],
        datasets=[
            ChartDataset(
                label=COVERAGE_LABEL,
                data=[row.total_coverage for row in rows],
                border_color="#3B82F6",
                background_color="rgba(59, 130, 246, 0.3)",
                fill=True,
                tension=0.4,
            )
        ],
    )


def coverage_bar(rows: Sequence[CoverageByType]) -> ChartData:
    """Monthly coverage-by-type rows as a single bar series."""
    return ChartData(
        labels=[month_abbreviation(row.month) for row in rows],
        datasets=[
            ChartDataset(
                label=COVERAGE_LABEL,
                data=[row.total_coverage for row in rows],
                background_color="#3b82f6",
            )
        ],
    )


def premium_pie(rows: Sequence[PremiumByType]) -> ChartData:
    """Premium totals by type; colours are assigned positionally and cycled."""
    labels = [row.type for row in rows]
    return ChartData(
        labels=labels,
        datasets=[
            ChartDataset(
                label=PREMIUM_LABEL,
                data=[float(row.total_premium) for row in rows],
                background_color=_palette(PIE_COLORS, len(labels)),
                border_color=_palette(PIE_BORDERS, len(labels)),
                border_width=1,
            )
        ],
    )


def month_abbreviation(value: str) -> str:
    """``2024-03-01`` (or ``2024-03``) -> ``Mar``; unparseable values pass through."""
    text = value.strip()
    candidates = (text, f"{text}-01", text.replace("Z", "+00:00"))
    for candidate in candidates:
        try:
            return datetime.fromisoformat(candidate).strftime("%b")
        except ValueError:
            continue
    return value


def _palette(colors: Sequence[str], size: int) -> list[str]:
    return list(islice(cycle(colors), size))
