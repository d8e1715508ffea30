"""Data model definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class Trend(str, Enum):
    """Direction of a book on one regional list within the recency window."""

    NEW = "new"
    RISING = "rising"
    STABLE = "stable"
    FALLING = "falling"


class SortOption(str, Enum):
    """Sort orders offered by Elsewhere discovery."""

    MOST_REGIONS = "most_regions"
    BEST_RANK = "best_rank"
    TOTAL_WEEKS = "total_weeks"
    NEWEST = "newest"


class RankingCategory(str, Enum):
    """The four year-end ranking categories."""

    REGIONAL_TOP10S = "regional_top10s"
    MOST_REGIONAL = "most_regional"
    MOST_NATIONAL = "most_national"
    MOST_EFFICIENT = "most_efficient"


@dataclass
class RankObservation:
    """One book's position on one regional list in one week."""

    isbn: str
    region: str  # e.g. PNBA
    week_date: date  # list publication day
    rank: int  # 1 = best
    category: str | None = None  # None -> "General"
    list_size: int | None = None  # None = derive from the week's list
    title: str | None = None
    author: str | None = None


@dataclass
class WeeklyScore:
    """Points earned by one observation."""

    isbn: str
    region: str
    week_date: date
    category: str
    rank: int
    list_size: int
    points: float  # (0, 100]

    def to_row(self) -> dict:
        return {
            "isbn": self.isbn,
            "region": self.region,
            "week_date": self.week_date.isoformat(),
            "category": self.category,
            "rank": self.rank,
            "list_size": self.list_size,
            "points": self.points,
        }


@dataclass
class BookPerformanceMetrics:
    """Aggregate performance of one book across all regions for one year."""

    isbn: str
    year: int
    total_score: float
    weeks_on_chart: int  # distinct weeks on any list
    regions_appeared: int
    max_weekly_score: float
    avg_weekly_score: float
    avg_score_per_week: float  # total_score / weeks_on_chart
    rsi_variance: float

    def to_row(self) -> dict:
        return {
            "isbn": self.isbn,
            "year": self.year,
            "total_score": self.total_score,
            "weeks_on_chart": self.weeks_on_chart,
            "regions_appeared": self.regions_appeared,
            "max_weekly_score": self.max_weekly_score,
            "avg_weekly_score": self.avg_weekly_score,
            "avg_score_per_week": self.avg_score_per_week,
            "rsi_variance": self.rsi_variance,
        }


@dataclass
class BookRegionalPerformance:
    """Performance of one book in one region for one year."""

    isbn: str
    year: int
    region: str
    regional_score: float
    weeks_on_chart: int
    best_rank: int
    avg_rank: float
    avg_score_per_week: float
    regional_strength_index: float  # regional_score / total_score

    def to_row(self) -> dict:
        return {
            "isbn": self.isbn,
            "year": self.year,
            "region": self.region,
            "regional_score": self.regional_score,
            "weeks_on_chart": self.weeks_on_chart,
            "best_rank": self.best_rank,
            "avg_rank": self.avg_rank,
            "avg_score_per_week": self.avg_score_per_week,
            "regional_strength_index": self.regional_strength_index,
        }


@dataclass
class BookMetadata:
    """Title/author lookup record used to decorate output."""

    isbn: str
    title: str
    author: str


@dataclass
class BookRanking:
    """One entry of a year-end ranking."""

    isbn: str
    title: str
    author: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RegionalSummary:
    """A book's performance in one comparison region over the recency window."""

    region: str
    current_rank: int | None  # None = not on the region's latest list
    weeks_on_list: int
    best_rank: int
    trend: Trend
    category: str | None = None


@dataclass
class AggregateMetrics:
    """Cross-region summary of an Elsewhere book."""

    total_regions: int
    total_weeks_across_all_regions: int
    best_rank_achieved: int
    average_rank: float  # mean of per-region best ranks


@dataclass
class ElsewhereBook:
    """A book charting in other regions but never in the target region."""

    isbn: str
    title: str
    author: str
    regional_performance: list[RegionalSummary]
    aggregate_metrics: AggregateMetrics
    category: str | None = None
    first_seen_date: date | None = None
    last_seen_date: date | None = None


@dataclass
class ElsewhereFilters:
    """Caller options for Elsewhere discovery."""

    target_region: str
    comparison_regions: list[str] = field(default_factory=list)  # empty = all others
    sort_by: SortOption = SortOption.MOST_REGIONS
    min_weeks_on_list: int | None = None
    min_regions: int | None = None
    search: str | None = None
    categories: list[str] = field(default_factory=list)
    show_only_new_this_week: bool = False
    page: int = 1  # 1-indexed
    page_size: int = 20


@dataclass
class ElsewherePage:
    """One page of Elsewhere results."""

    books: list[ElsewhereBook]
    total_count: int
    available_regions: list[str]
    week_date: date | None  # most recent week in the window
    page: int
    page_size: int
    total_pages: int


@dataclass
class UniqueBook:
    """A book that charted only in one region over the lookback window."""

    isbn: str
    title: str
    author: str
    weeks_on_list: int
    first_seen: date
    last_seen: date
    best_rank: int
    current_rank: int | None
    category: str | None = None
