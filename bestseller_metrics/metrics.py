"""Per-book yearly aggregation of weekly scores.

Regional Strength Index (RSI) is the share of a book's yearly score earned in
one region. The variance of a book's RSI values tells nationally even sellers
(low variance) apart from regional phenomena (high variance).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from bestseller_metrics.models import (
    BookPerformanceMetrics,
    BookRegionalPerformance,
    WeeklyScore,
)

logger = logging.getLogger(__name__)


def calculate_rsi(regional_scores: dict[str, float]) -> dict[str, float]:
    """Return each region's share of the summed score (0 everywhere if the sum is 0)."""
    total = sum(regional_scores.values())
    if total == 0:
        return {region: 0.0 for region in regional_scores}
    return {region: score / total for region, score in regional_scores.items()}


def calculate_rsi_variance(rsi_values: Iterable[float]) -> float:
    """Population variance; 0 for fewer than two values."""
    values = list(rsi_values)
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def _sort_key(s: WeeklyScore):
    return (s.region, s.week_date, s.category, s.rank)


def aggregate_book(
    isbn: str, year: int, scores: Iterable[WeeklyScore]
) -> tuple[BookPerformanceMetrics, list[BookRegionalPerformance]]:
    """Aggregate one book's weekly scores for one year.

    Args:
        isbn: book key
        year: calendar year the scores belong to
        scores: every WeeklyScore of the book in that year

    Returns:
        (book metrics, one regional row per region, regions in alphabetical order)

    Raises:
        ValueError: no scores were given.
    """
    rows = sorted(scores, key=_sort_key)
    if not rows:
        raise ValueError(f"no weekly scores for {isbn} in {year}")

    by_region: dict[str, list[WeeklyScore]] = defaultdict(list)
    for s in rows:
        by_region[s.region].append(s)

    regional_scores = {
        region: sum(s.points for s in region_rows)
        for region, region_rows in sorted(by_region.items())
    }
    total_score = sum(regional_scores.values())
    rsi = calculate_rsi(regional_scores)

    regional: list[BookRegionalPerformance] = []
    for region, region_rows in sorted(by_region.items()):
        weeks = len({s.week_date for s in region_rows})
        regional.append(BookRegionalPerformance(
            isbn=isbn,
            year=year,
            region=region,
            regional_score=regional_scores[region],
            weeks_on_chart=weeks,
            best_rank=min(s.rank for s in region_rows),
            avg_rank=sum(s.rank for s in region_rows) / len(region_rows),
            avg_score_per_week=regional_scores[region] / weeks,
            regional_strength_index=rsi[region],
        ))

    weeks_on_chart = len({s.week_date for s in rows})
    metrics = BookPerformanceMetrics(
        isbn=isbn,
        year=year,
        total_score=total_score,
        weeks_on_chart=weeks_on_chart,
        regions_appeared=len(by_region),
        max_weekly_score=max(s.points for s in rows),
        avg_weekly_score=sum(s.points for s in rows) / len(rows),
        avg_score_per_week=total_score / weeks_on_chart,
        rsi_variance=calculate_rsi_variance(rsi.values()),
    )
    return metrics, regional


def aggregate_year(
    year: int, scores: Iterable[WeeklyScore]
) -> tuple[list[BookPerformanceMetrics], list[BookRegionalPerformance]]:
    """Aggregate every book with scores in ``year``; rows from other years are ignored."""
    by_isbn: dict[str, list[WeeklyScore]] = defaultdict(list)
    skipped = 0
    for s in scores:
        if s.week_date.year != year:
            skipped += 1
            continue
        by_isbn[s.isbn].append(s)

    if skipped:
        logger.debug("Ignored %d weekly scores outside %d", skipped, year)

    all_metrics: list[BookPerformanceMetrics] = []
    all_regional: list[BookRegionalPerformance] = []
    for isbn in sorted(by_isbn):
        metrics, regional = aggregate_book(isbn, year, by_isbn[isbn])
        all_metrics.append(metrics)
        all_regional.extend(regional)

    logger.info(
        "Aggregated %d books (%d regional rows) for %d",
        len(all_metrics), len(all_regional), year,
    )
    return all_metrics, all_regional
