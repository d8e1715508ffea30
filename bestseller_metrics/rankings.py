"""Year-end ranking categories.

Every ranking takes already-fetched metric rows for one year and returns
BookRanking lists longer than what is finally displayed, so callers can
filter further without another query.

Most Regional pipeline:
  1. pool = top books by total score ∪ top books per region ∪ books with a
     high RSI somewhere
  2. drop books whose best RSI does not exceed the regional threshold
  3. assign each book to the region of its highest RSI
  4. rank each region's books by ``regional_score * rsi_boost``
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping, Sequence

from bestseller_metrics.config import (
    EFFICIENT_MIN_WEEKS,
    MOST_REGIONAL_LIMIT,
    NATIONAL_MIN_REGIONS,
    POOL_MIN_RSI,
    POOL_TOP_NATIONAL,
    POOL_TOP_PER_REGION,
    RANKING_LIMIT,
    REGIONAL_RSI_THRESHOLD,
    RSI_BOOST_MAX,
)
from bestseller_metrics.models import (
    BookMetadata,
    BookPerformanceMetrics,
    BookRanking,
    BookRegionalPerformance,
    RankingCategory,
)

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


def _decorate(
    isbn: str,
    score: float,
    metadata: Mapping[str, BookMetadata] | None,
    extra: dict,
) -> BookRanking:
    ranking = BookRanking(isbn=isbn, title=UNKNOWN, author=UNKNOWN, score=score, metadata=extra)
    if metadata:
        apply_metadata([ranking], metadata)
    return ranking


def apply_metadata(
    rankings: Iterable[BookRanking], metadata: Mapping[str, BookMetadata]
) -> None:
    """Fill title/author in place; unknown isbns keep "Unknown"."""
    for ranking in rankings:
        book = metadata.get(ranking.isbn)
        if book is None:
            continue
        ranking.title = book.title or UNKNOWN
        ranking.author = book.author or UNKNOWN


def regional_top(
    regional_rows: Iterable[BookRegionalPerformance],
    year: int,
    region: str,
    metadata: Mapping[str, BookMetadata] | None = None,
    limit: int = RANKING_LIMIT,
) -> list[BookRanking]:
    """Books with the highest regional score in ``region``."""
    rows = [r for r in regional_rows if r.year == year and r.region == region]
    rows.sort(key=lambda r: (-r.regional_score, r.isbn))
    return [
        _decorate(r.isbn, r.regional_score, metadata, {
            "weeksOnChart": r.weeks_on_chart,
            "bestRank": r.best_rank,
            "avgScorePerWeek": r.avg_score_per_week,
            "rsi": r.regional_strength_index,
        })
        for r in rows[:limit]
    ]


def most_national(
    metrics: Iterable[BookPerformanceMetrics],
    year: int,
    metadata: Mapping[str, BookMetadata] | None = None,
    limit: int = RANKING_LIMIT,
    min_regions: int = NATIONAL_MIN_REGIONS,
) -> list[BookRanking]:
    """Books spread most evenly across regions (lowest RSI variance)."""
    rows = [m for m in metrics if m.year == year and m.regions_appeared >= min_regions]
    rows.sort(key=lambda m: (m.rsi_variance, -m.total_score, m.isbn))
    return [
        _decorate(m.isbn, m.total_score, metadata, {
            "rsiVariance": m.rsi_variance,
            "regionsAppeared": m.regions_appeared,
            "weeksOnChart": m.weeks_on_chart,
        })
        for m in rows[:limit]
    ]


def most_efficient(
    metrics: Iterable[BookPerformanceMetrics],
    year: int,
    metadata: Mapping[str, BookMetadata] | None = None,
    limit: int = RANKING_LIMIT,
    min_weeks: int = EFFICIENT_MIN_WEEKS,
) -> list[BookRanking]:
    """Books with the highest average score per charting week."""
    rows = [m for m in metrics if m.year == year and m.weeks_on_chart >= min_weeks]
    rows.sort(key=lambda m: (-m.avg_score_per_week, m.isbn))
    return [
        _decorate(m.isbn, m.avg_score_per_week, metadata, {
            "totalScore": m.total_score,
            "weeksOnChart": m.weeks_on_chart,
        })
        for m in rows[:limit]
    ]


def rsi_boost(rsi: float, threshold: float = REGIONAL_RSI_THRESHOLD) -> float:
    """Weight from 1.0 at ``threshold`` to 1.5 at RSI 1.0, never below 1.0."""
    boost = 1.0 + ((rsi - threshold) / (1.0 - threshold)) * RSI_BOOST_MAX
    return max(1.0, boost)


def build_regional_pool(
    metrics: Iterable[BookPerformanceMetrics],
    regional_rows: Sequence[BookRegionalPerformance],
    regions: Sequence[str],
    top_national: int = POOL_TOP_NATIONAL,
    top_per_region: int = POOL_TOP_PER_REGION,
    min_rsi: float = POOL_MIN_RSI,
) -> set[str]:
    """Candidate isbns for Most Regional."""
    national = sorted(metrics, key=lambda m: (-m.total_score, m.isbn))[:top_national]
    pool = {m.isbn for m in national}
    stage1 = len(pool)

    by_region: dict[str, list[BookRegionalPerformance]] = defaultdict(list)
    for r in regional_rows:
        by_region[r.region].append(r)
    for region in regions:
        top = sorted(by_region.get(region, []), key=lambda r: (-r.regional_score, r.isbn))
        pool.update(r.isbn for r in top[:top_per_region])
    stage2 = len(pool)

    pool.update(r.isbn for r in regional_rows if r.regional_strength_index >= min_rsi)

    logger.info(
        "Most Regional pool: %d national, %d after regional tops, %d after high RSI",
        stage1, stage2, len(pool),
    )
    return pool


def most_regional(
    metrics: Iterable[BookPerformanceMetrics],
    regional_rows: Iterable[BookRegionalPerformance],
    year: int,
    regions: Sequence[str],
    metadata: Mapping[str, BookMetadata] | None = None,
    limit_per_region: int = MOST_REGIONAL_LIMIT,
    threshold: float = REGIONAL_RSI_THRESHOLD,
) -> dict[str, list[BookRanking]]:
    """Books owned by one region, each listed under exactly one region.

    Returns:
        region -> ranking, in the order of ``regions``. Regions without an
        assigned book map to an empty list.
    """
    metrics = [m for m in metrics if m.year == year]
    rows = [
        r for r in regional_rows
        if r.year == year and r.region in regions
    ]
    total_scores = {m.isbn: m.total_score for m in metrics}

    pool = build_regional_pool(metrics, rows, regions)

    # Regions are visited alphabetically and only a strictly higher RSI
    # replaces the current region, so exact ties go to the first region.
    best: dict[str, BookRegionalPerformance] = {}
    for r in sorted(rows, key=lambda r: (r.region, r.isbn)):
        if r.isbn not in pool:
            continue
        current = best.get(r.isbn)
        if current is None or r.regional_strength_index > current.regional_strength_index:
            best[r.isbn] = r

    assigned = {isbn: r for isbn, r in best.items() if r.regional_strength_index > threshold}
    logger.info(
        "Most Regional: %d of %d pooled books clear RSI > %.2f",
        len(assigned), len(pool), threshold,
    )

    by_region: dict[str, list[BookRegionalPerformance]] = defaultdict(list)
    for r in assigned.values():
        by_region[r.region].append(r)

    result: dict[str, list[BookRanking]] = {}
    for region in regions:
        ranked = sorted(
            by_region.get(region, []),
            key=lambda r: (-r.regional_score * rsi_boost(r.regional_strength_index, threshold), r.isbn),
        )
        result[region] = [
            _decorate(r.isbn, r.regional_score, metadata, {
                "region": region,
                "rsi": r.regional_strength_index,
                "rsiBoost": rsi_boost(r.regional_strength_index, threshold),
                "regionalScore": r.regional_score,
                "totalScore": total_scores.get(r.isbn, 0.0),
                "weeksOnChart": r.weeks_on_chart,
            })
            for r in ranked[:limit_per_region]
        ]
        logger.debug("%s: %d books assigned", region, len(ranked))
    return result


def rank_books(
    category: RankingCategory | str,
    year: int,
    metrics: Sequence[BookPerformanceMetrics],
    regional_rows: Sequence[BookRegionalPerformance],
    regions: Sequence[str],
    metadata: Mapping[str, BookMetadata] | None = None,
    region: str | None = None,
    limit: int | None = None,
) -> list[BookRanking]:
    """Run one ranking category.

    ``regional_top10s`` needs ``region``. ``most_regional`` returns the list of
    ``region`` when given, otherwise every region's list back to back.
    """
    category = RankingCategory(category)

    if category is RankingCategory.REGIONAL_TOP10S:
        if not region:
            raise ValueError("regional_top10s requires a region")
        return regional_top(regional_rows, year, region, metadata, limit or RANKING_LIMIT)

    if category is RankingCategory.MOST_NATIONAL:
        return most_national(metrics, year, metadata, limit or RANKING_LIMIT)

    if category is RankingCategory.MOST_EFFICIENT:
        return most_efficient(metrics, year, metadata, limit or RANKING_LIMIT)

    by_region = most_regional(
        metrics, regional_rows, year, regions, metadata, limit or MOST_REGIONAL_LIMIT,
    )
    if region:
        return by_region.get(region, [])
    return [ranking for rankings in by_region.values() for ranking in rankings]
