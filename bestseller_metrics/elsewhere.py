"""Elsewhere discovery: books charting in other regions but never in the target region.

Flow:
  1. exclusion set: every isbn the target region listed within the lookback
  2. group the other regions' recent observations by isbn, then by region
  3. per region: weeks on list, best rank, current rank, trend
  4. aggregate across regions, filter, sort, paginate
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping

from bestseller_metrics.models import (
    AggregateMetrics,
    BookMetadata,
    ElsewhereBook,
    ElsewhereFilters,
    ElsewherePage,
    RankObservation,
    RegionalSummary,
    SortOption,
    Trend,
)
from bestseller_metrics.scoring import normalize_category

logger = logging.getLogger(__name__)


def classify_trend(current_rank: int | None, best_rank: int, weeks_on_list: int) -> Trend:
    """Fixed-threshold heuristic, not a fitted model.

    - 2 weeks or fewer on the list: NEW
    - off the latest list: FALLING
    - within 2 places of the best rank: RISING
    - more than 5 places below the best rank: FALLING
    - otherwise: STABLE
    """
    if weeks_on_list <= 2:
        return Trend.NEW
    if current_rank is None:
        return Trend.FALLING
    if current_rank - best_rank <= 2:
        return Trend.RISING
    if current_rank - best_rank > 5:
        return Trend.FALLING
    return Trend.STABLE


def build_exclusion_set(observations: Iterable[RankObservation]) -> set[str]:
    """Isbns present in the target region's observations."""
    return {o.isbn for o in observations}


def _summarise_region(
    region: str, rows: list[RankObservation], latest_week: date
) -> RegionalSummary:
    weeks = {o.week_date for o in rows}
    best_rank = min(o.rank for o in rows)
    current = [o.rank for o in rows if o.week_date == latest_week]
    current_rank = min(current) if current else None
    weeks_on_list = len(weeks)
    latest_row = max(rows, key=lambda o: o.week_date)
    return RegionalSummary(
        region=region,
        current_rank=current_rank,
        weeks_on_list=weeks_on_list,
        best_rank=best_rank,
        trend=classify_trend(current_rank, best_rank, weeks_on_list),
        category=normalize_category(latest_row.category),
    )


def group_elsewhere_books(
    observations: Iterable[RankObservation],
    excluded_isbns: set[str],
    metadata: Mapping[str, BookMetadata] | None = None,
) -> list[ElsewhereBook]:
    """Build an ElsewhereBook for every isbn outside ``excluded_isbns``.

    Current rank is the rank on the region's most recent list in the window.
    """
    metadata = metadata or {}
    by_isbn: dict[str, dict[str, list[RankObservation]]] = defaultdict(lambda: defaultdict(list))
    latest_by_region: dict[str, date] = {}

    for o in observations:
        latest = latest_by_region.get(o.region)
        if latest is None or o.week_date > latest:
            latest_by_region[o.region] = o.week_date
        if o.isbn in excluded_isbns:
            continue
        by_isbn[o.isbn][o.region].append(o)

    books: list[ElsewhereBook] = []
    for isbn in sorted(by_isbn):
        regions = by_isbn[isbn]
        summaries = [
            _summarise_region(region, rows, latest_by_region[region])
            for region, rows in sorted(regions.items())
        ]
        all_rows = [o for rows in regions.values() for o in rows]
        average_rank = sum(s.best_rank for s in summaries) / len(summaries)

        meta = metadata.get(isbn)
        first_row = min(all_rows, key=lambda o: o.week_date)
        title = (meta.title if meta else None) or first_row.title or ""
        author = (meta.author if meta else None) or first_row.author or ""

        books.append(ElsewhereBook(
            isbn=isbn,
            title=title,
            author=author,
            category=normalize_category(first_row.category),
            regional_performance=summaries,
            aggregate_metrics=AggregateMetrics(
                total_regions=len(summaries),
                total_weeks_across_all_regions=sum(s.weeks_on_list for s in summaries),
                best_rank_achieved=min(s.best_rank for s in summaries),
                average_rank=round(average_rank, 1),
            ),
            first_seen_date=first_row.week_date,
            last_seen_date=max(o.week_date for o in all_rows),
        ))
    return books


def _matches_search(book: ElsewhereBook, search: str) -> bool:
    needle = search.strip().lower()
    return (
        needle in book.title.lower()
        or needle in book.author.lower()
        or needle in book.isbn
    )


def filter_books(books: list[ElsewhereBook], filters: ElsewhereFilters) -> list[ElsewhereBook]:
    """Apply the caller's comparison-region, threshold, search and recency filters."""
    filtered = books

    if filters.comparison_regions:
        wanted = set(filters.comparison_regions)
        filtered = [
            b for b in filtered
            if any(p.region in wanted for p in b.regional_performance)
        ]

    if filters.categories:
        categories = set(filters.categories)
        filtered = [
            b for b in filtered
            if any(p.category in categories for p in b.regional_performance)
        ]

    if filters.min_weeks_on_list:
        filtered = [
            b for b in filtered
            if b.aggregate_metrics.total_weeks_across_all_regions >= filters.min_weeks_on_list
        ]

    if filters.min_regions:
        filtered = [b for b in filtered if b.aggregate_metrics.total_regions >= filters.min_regions]

    if filters.search and filters.search.strip():
        filtered = [b for b in filtered if _matches_search(b, filters.search)]

    if filters.show_only_new_this_week and filtered:
        latest = max(b.last_seen_date for b in filtered)
        filtered = [b for b in filtered if b.first_seen_date == latest]

    return filtered


def sort_books(books: list[ElsewhereBook], sort_by: SortOption | str) -> list[ElsewhereBook]:
    """Order books; ties fall back to isbn."""
    sort_by = SortOption(sort_by)
    if sort_by is SortOption.MOST_REGIONS:
        key = lambda b: (-b.aggregate_metrics.total_regions, b.isbn)  # noqa: E731
    elif sort_by is SortOption.BEST_RANK:
        key = lambda b: (b.aggregate_metrics.best_rank_achieved, b.isbn)  # noqa: E731
    elif sort_by is SortOption.TOTAL_WEEKS:
        key = lambda b: (-b.aggregate_metrics.total_weeks_across_all_regions, b.isbn)  # noqa: E731
    else:
        key = lambda b: (-b.first_seen_date.toordinal(), b.isbn)  # noqa: E731
    return sorted(books, key=key)


def discover_elsewhere(
    observations: Iterable[RankObservation],
    excluded_isbns: set[str],
    filters: ElsewhereFilters,
    metadata: Mapping[str, BookMetadata] | None = None,
) -> ElsewherePage:
    """Group, filter, sort and paginate the other regions' recent observations.

    Observations from the target region are ignored even if passed in.
    """
    if filters.page < 1 or filters.page_size < 1:
        raise ValueError("page and page_size must be positive")

    observations = [o for o in observations if o.region != filters.target_region]
    week_date = max((o.week_date for o in observations), default=None)

    books = group_elsewhere_books(observations, excluded_isbns, metadata)
    logger.info(
        "Found %d books not listed in %s", len(books), filters.target_region,
    )

    filtered = sort_books(filter_books(books, filters), filters.sort_by)

    total_pages = math.ceil(len(filtered) / filters.page_size)
    start = (filters.page - 1) * filters.page_size
    page_books = filtered[start:start + filters.page_size]
    logger.info(
        "Returning %d of %d elsewhere books (page %d/%d)",
        len(page_books), len(filtered), filters.page, total_pages,
    )

    available = filters.comparison_regions or sorted({o.region for o in observations})
    return ElsewherePage(
        books=page_books,
        total_count=len(filtered),
        available_regions=list(available),
        week_date=week_date,
        page=filters.page,
        page_size=filters.page_size,
        total_pages=total_pages,
    )
