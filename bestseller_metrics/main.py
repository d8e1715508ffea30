"""Regional bestseller metrics — batch entry points.

Jobs:
  scores    score one region's list for one week and upsert weekly_scores
  backfill  score every region/week of a year
  metrics   re-aggregate a year's weekly_scores into the metrics tables
  rankings  print a year-end ranking category
  elsewhere print books listed elsewhere but never in a region
  unique    print books listed only in a region
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import date, datetime, timedelta

from bestseller_metrics import db
from bestseller_metrics.config import (
    ELSEWHERE_PAGE_SIZE,
    EXCLUSION_LOOKBACK_DAYS,
    LOG_DIR,
    RECENCY_WINDOW_DAYS,
    REGIONS,
    UNIQUE_LOOKBACK_DAYS,
)
from bestseller_metrics.elsewhere import build_exclusion_set, discover_elsewhere
from bestseller_metrics.errors import StoreReadError, UpsertReport
from bestseller_metrics.metrics import aggregate_year
from bestseller_metrics.models import (
    BookRanking,
    ElsewhereFilters,
    ElsewherePage,
    RankingCategory,
    SortOption,
    UniqueBook,
)
from bestseller_metrics.rankings import apply_metadata, rank_books
from bestseller_metrics.scoring import score_observations
from bestseller_metrics.unique import find_unique_books

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Initial logging setup."""
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / f"metrics_{datetime.now().strftime('%Y%m%d')}.log"
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )


def run_weekly_scores(week_date: date, region: str) -> UpsertReport:
    """Score one region's lists for one week."""
    logger.info("Calculating weekly scores: region=%s, week=%s", region, week_date)
    observations = list(db.iter_observations(region=region, since=week_date, until=week_date))
    if not observations:
        logger.warning("No observations for %s on %s", region, week_date)
        return UpsertReport(table="weekly_scores")

    scores = score_observations(observations)
    return db.upsert_weekly_scores(scores)


def run_backfill_scores(
    year: int,
) -> tuple[dict[tuple[date, str], UpsertReport], list[tuple[date, str]]]:
    """Score every region/week of ``year``.

    A region/week whose read fails is logged and skipped; the rest still run.
    Returns the upsert report per (week_date, region) and the pairs whose read failed.
    """
    start_time = time.time()
    logger.info("=== Scores backfill %d started ===", year)

    pairs = db.fetch_region_weeks(year)
    reports: dict[tuple[date, str], UpsertReport] = {}
    failed: list[tuple[date, str]] = []
    for week_date, region in pairs:
        try:
            reports[(week_date, region)] = run_weekly_scores(week_date, region)
        except StoreReadError as e:
            logger.error(
                "Backfill read failed: region=%s, week=%s, page=%d, error=%s",
                region, week_date, e.page_index, e,
            )
            failed.append((week_date, region))

    elapsed = time.time() - start_time
    written = sum(r.rows_written for r in reports.values())
    logger.info(
        "=== Scores backfill %d finished: %d/%d pairs, %d rows, %.1f s ===",
        year, len(reports), len(pairs), written, elapsed,
    )
    if failed:
        logger.warning("Failed region/weeks: %s", ", ".join(f"{r}@{w}" for w, r in failed))
    return reports, failed


def run_update_metrics(year: int) -> list[UpsertReport]:
    """Recompute every book's metrics for ``year`` from weekly_scores."""
    start_time = time.time()
    logger.info("=== Metrics update %d started ===", year)

    scores = db.fetch_weekly_scores(year)
    metrics, regional = aggregate_year(year, scores)
    reports = [
        db.upsert_performance_metrics(metrics),
        db.upsert_regional_performance(regional),
    ]

    elapsed = time.time() - start_time
    failed = sum(len(r.failed_chunks) for r in reports)
    logger.info(
        "=== Metrics update %d finished: %d books, %d failed chunks, %.1f s ===",
        year, len(metrics), failed, elapsed,
    )
    return reports


def run_rankings(
    category: RankingCategory | str,
    year: int,
    region: str | None = None,
    regions: list[str] | None = None,
) -> list[BookRanking]:
    """Load a year's metrics and run one ranking category."""
    metrics = db.fetch_performance_metrics(year)
    regional = db.fetch_regional_performance(year)
    rankings = rank_books(
        category, year, metrics, regional, regions or REGIONS, region=region,
    )
    if rankings:
        apply_metadata(rankings, db.fetch_book_metadata(r.isbn for r in rankings))
    logger.info("%s %d: %d books", RankingCategory(category).value, year, len(rankings))
    return rankings


def run_elsewhere(
    filters: ElsewhereFilters,
    today: date | None = None,
    lookback_days: int = EXCLUSION_LOOKBACK_DAYS,
    recency_days: int = RECENCY_WINDOW_DAYS,
) -> ElsewherePage:
    """Books listed in other regions within ``recency_days`` but not in the
    target region within ``lookback_days``."""
    today = today or date.today()
    exclusion_since = today - timedelta(days=lookback_days)
    recent_since = today - timedelta(days=recency_days)

    excluded = build_exclusion_set(
        db.iter_observations(
            region=filters.target_region, since=exclusion_since, columns="isbn, region, week_date, rank",
        )
    )
    logger.info("%d isbns listed in %s since %s", len(excluded), filters.target_region, exclusion_since)

    recent = list(db.iter_observations(exclude_region=filters.target_region, since=recent_since))
    logger.info("%d observations in other regions since %s", len(recent), recent_since)

    page = discover_elsewhere(recent, excluded, filters)
    missing = [b for b in page.books if not b.title or not b.author]
    if missing:
        metadata = db.fetch_book_metadata(b.isbn for b in missing)
        for book in missing:
            meta = metadata.get(book.isbn)
            if meta:
                book.title = book.title or meta.title
                book.author = book.author or meta.author
    return page


def run_unique(region: str, today: date | None = None) -> list[UniqueBook]:
    """Books listed in ``region`` and nowhere else over the past year."""
    today = today or date.today()
    since = today - timedelta(days=UNIQUE_LOOKBACK_DAYS)

    observations = list(db.iter_observations(region=region, since=since))
    if not observations:
        logger.info("No books listed in %s since %s", region, since)
        return []

    isbn_regions = db.fetch_isbn_regions(sorted({o.isbn for o in observations}), since)
    return find_unique_books(region, observations, isbn_regions)


def _print_rankings(rankings: list[BookRanking]) -> None:
    for i, r in enumerate(rankings, start=1):
        region = r.metadata.get("region")
        prefix = f"[{region}] " if region else ""
        print(f"{i:3d}. {prefix}{r.title} / {r.author} ({r.isbn}) {r.score:.1f}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bestseller-metrics", description=__doc__.splitlines()[0])
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("scores", help="score one region/week")
    p.add_argument("week_date", type=date.fromisoformat)
    p.add_argument("region", choices=REGIONS)

    p = sub.add_parser("backfill", help="score every region/week of one year")
    p.add_argument("--year", type=int, default=date.today().year)

    p = sub.add_parser("metrics", help="re-aggregate one year")
    p.add_argument("--year", type=int, default=date.today().year)

    p = sub.add_parser("rankings", help="year-end ranking")
    p.add_argument("category", choices=[c.value for c in RankingCategory])
    p.add_argument("--year", type=int, default=date.today().year)
    p.add_argument("--region", choices=REGIONS)

    p = sub.add_parser("elsewhere", help="books listed elsewhere only")
    p.add_argument("target_region", choices=REGIONS)
    p.add_argument("--compare", nargs="*", default=[], choices=REGIONS)
    p.add_argument("--sort", default=SortOption.MOST_REGIONS.value, choices=[s.value for s in SortOption])
    p.add_argument("--min-weeks", type=int)
    p.add_argument("--min-regions", type=int)
    p.add_argument("--search")
    p.add_argument("--new-this-week", action="store_true")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--page-size", type=int, default=ELSEWHERE_PAGE_SIZE)
    p.add_argument("--lookback-days", type=int, default=EXCLUSION_LOOKBACK_DAYS)
    p.add_argument("--recency-days", type=int, default=RECENCY_WINDOW_DAYS)

    p = sub.add_parser("unique", help="books listed only in one region")
    p.add_argument("region", choices=REGIONS)
    return parser


def run(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = _build_parser().parse_args(argv)
    setup_logging()

    if args.command == "scores":
        report = run_weekly_scores(args.week_date, args.region)
        return 0 if report.ok else 1

    if args.command == "backfill":
        reports, failed = run_backfill_scores(args.year)
        return 0 if not failed and all(r.ok for r in reports.values()) else 1

    if args.command == "metrics":
        reports = run_update_metrics(args.year)
        return 0 if all(r.ok for r in reports) else 1

    if args.command == "rankings":
        _print_rankings(run_rankings(args.category, args.year, args.region))
        return 0

    if args.command == "elsewhere":
        page = run_elsewhere(ElsewhereFilters(
            target_region=args.target_region,
            comparison_regions=args.compare,
            sort_by=SortOption(args.sort),
            min_weeks_on_list=args.min_weeks,
            min_regions=args.min_regions,
            search=args.search,
            show_only_new_this_week=args.new_this_week,
            page=args.page,
            page_size=args.page_size,
        ), lookback_days=args.lookback_days, recency_days=args.recency_days)
        for book in page.books:
            regions = ", ".join(f"{p.region}#{p.current_rank or '-'} {p.trend.value}" for p in book.regional_performance)
            print(f"{book.title} / {book.author} ({book.isbn}): {regions}")
        print(f"page {page.page}/{page.total_pages}, {page.total_count} books")
        return 0

    for book in run_unique(args.region):
        print(f"{book.first_seen} {book.title} / {book.author} ({book.isbn}) best #{book.best_rank}")
    return 0


if __name__ == "__main__":
    sys.exit(run())
