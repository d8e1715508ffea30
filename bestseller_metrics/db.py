"""Supabase database access.

Tables:
  regional_bestsellers       raw rank observations (one row per isbn/region/week)
  weekly_scores              points per observation
  book_performance_metrics   per isbn/year aggregates
  book_regional_performance  per isbn/year/region aggregates
  distinct_books             one title/author row per isbn (view)

Reads go through ``iter_pages``, which pages with .range() until a short page.
Writes are chunked upserts; a failed chunk is reported, not raised.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable, Iterator, Sequence

from supabase import Client, create_client

from bestseller_metrics.config import (
    IN_FILTER_CHUNK_SIZE,
    MAX_PAGES,
    PAGE_SIZE,
    SUPABASE_SECRET_KEY,
    SUPABASE_URL,
    UPSERT_CHUNK_SIZE,
)
from bestseller_metrics.errors import ChunkFailure, PageLimitExceeded, StoreReadError, UpsertReport
from bestseller_metrics.models import (
    BookMetadata,
    BookPerformanceMetrics,
    BookRegionalPerformance,
    RankObservation,
    WeeklyScore,
)

logger = logging.getLogger(__name__)

_client: Client | None = None

OBSERVATION_COLUMNS = "isbn, region, week_date, rank, category, title, author"
WEEKLY_SCORE_COLUMNS = "isbn, region, week_date, category, rank, list_size, points"


def _get_client() -> Client:
    """Create the Supabase client on first use."""
    global _client
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_SECRET_KEY:
            raise EnvironmentError(
                "Missing SUPABASE_URL / SUPABASE_SECRET_KEY. Set them in .env."
            )
        _client = create_client(SUPABASE_URL, SUPABASE_SECRET_KEY)
    return _client


def _table(name: str):
    """Reference a table (or view) in the public schema."""
    return _get_client().table(name)


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# --- Paged reads ---


def iter_pages(
    build_query: Callable[[], object],
    page_size: int = PAGE_SIZE,
    max_pages: int = MAX_PAGES,
    start_page: int = 0,
) -> Iterator[list[dict]]:
    """Yield pages of rows until the store returns a short page.

    Args:
        build_query: returns a fresh, ordered query builder for every page
        page_size: rows per .range() request
        max_pages: hard cap on pages fetched in one call
        start_page: page index to resume from

    Raises:
        StoreReadError: a page request failed; ``page_index`` is that page.
        PageLimitExceeded: still full pages after ``max_pages``.
    """
    rows_read = 0
    for page in range(start_page, start_page + max_pages):
        start = page * page_size
        try:
            resp = build_query().range(start, start + page_size - 1).execute()
        except Exception as e:
            logger.error("Page read failed: page=%d, error=%s", page, e)
            raise StoreReadError("store read failed", page_index=page, rows_read=rows_read) from e

        rows = resp.data or []
        rows_read += len(rows)
        if rows:
            yield rows
        if len(rows) < page_size:
            logger.debug("Paged read finished: %d pages, %d rows", page - start_page + 1, rows_read)
            return

    raise PageLimitExceeded(
        f"more than {max_pages} pages", page_index=start_page + max_pages, rows_read=rows_read,
    )


def _to_date(value) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _to_observation(row: dict) -> RankObservation:
    return RankObservation(
        isbn=row["isbn"],
        region=row["region"],
        week_date=_to_date(row["week_date"]),
        rank=int(row["rank"]),
        category=row.get("category"),
        list_size=row.get("list_size"),
        title=row.get("title"),
        author=row.get("author"),
    )


def iter_observations(
    region: str | None = None,
    exclude_region: str | None = None,
    since: date | None = None,
    until: date | None = None,
    isbns: Sequence[str] | None = None,
    columns: str = OBSERVATION_COLUMNS,
    page_size: int = PAGE_SIZE,
    start_page: int = 0,
) -> Iterator[RankObservation]:
    """Stream rank observations, newest week first.

    ``since`` and ``until`` are inclusive. ``start_page`` resumes a read that
    failed with StoreReadError at that page.
    """

    def build_query():
        q = _table("regional_bestsellers").select(columns)
        if region:
            q = q.eq("region", region)
        if exclude_region:
            q = q.neq("region", exclude_region)
        if since:
            q = q.gte("week_date", since.isoformat())
        if until:
            q = q.lte("week_date", until.isoformat())
        if isbns is not None:
            q = q.in_("isbn", list(isbns))
        return q.order("week_date", desc=True).order("region").order("isbn").order("category")

    for rows in iter_pages(build_query, page_size=page_size, start_page=start_page):
        for row in rows:
            yield _to_observation(row)


def fetch_isbn_regions(isbns: Sequence[str], since: date, batch_size: int = 100) -> dict[str, set[str]]:
    """Regions each isbn charted in since ``since``."""
    result: dict[str, set[str]] = {}
    for batch in _chunks(list(isbns), batch_size):
        for o in iter_observations(since=since, isbns=batch, columns="isbn, region, week_date, rank"):
            result.setdefault(o.isbn, set()).add(o.region)
    return result


def _year_bounds(year: int) -> tuple[str, str]:
    return date(year, 1, 1).isoformat(), date(year + 1, 1, 1).isoformat()


def fetch_region_weeks(year: int, start_page: int = 0) -> list[tuple[date, str]]:
    """Distinct (week_date, region) pairs with observations in ``year``, oldest first."""
    start, end = _year_bounds(year)

    def build_query():
        return (
            _table("regional_bestsellers")
            .select("week_date, region")
            .gte("week_date", start)
            .lt("week_date", end)
            .order("week_date")
            .order("region")
            .order("isbn")
            .order("category")
        )

    pairs: set[tuple[date, str]] = set()
    for rows in iter_pages(build_query, start_page=start_page):
        for row in rows:
            pairs.add((_to_date(row["week_date"]), row["region"]))
    logger.info("regional_bestsellers: %d region/week pairs in %d", len(pairs), year)
    return sorted(pairs)


def fetch_weekly_scores(
    year: int, isbns: Sequence[str] | None = None, start_page: int = 0
) -> list[WeeklyScore]:
    """All weekly scores in ``year``, optionally limited to some isbns."""
    start, end = _year_bounds(year)

    def build_query():
        q = (
            _table("weekly_scores")
            .select(WEEKLY_SCORE_COLUMNS)
            .gte("week_date", start)
            .lt("week_date", end)
        )
        if isbns is not None:
            q = q.in_("isbn", list(isbns))
        return q.order("isbn").order("region").order("week_date").order("category")

    scores: list[WeeklyScore] = []
    for rows in iter_pages(build_query, start_page=start_page):
        for row in rows:
            scores.append(WeeklyScore(
                isbn=row["isbn"],
                region=row["region"],
                week_date=_to_date(row["week_date"]),
                category=row["category"],
                rank=int(row["rank"]),
                list_size=int(row["list_size"]),
                points=float(row["points"]),
            ))
    logger.info("weekly_scores: %d rows for %d", len(scores), year)
    return scores


def fetch_performance_metrics(year: int, start_page: int = 0) -> list[BookPerformanceMetrics]:
    """Every book_performance_metrics row of ``year``."""

    def build_query():
        return _table("book_performance_metrics").select("*").eq("year", year).order("isbn")

    metrics: list[BookPerformanceMetrics] = []
    for rows in iter_pages(build_query, start_page=start_page):
        for row in rows:
            metrics.append(BookPerformanceMetrics(
                isbn=row["isbn"],
                year=int(row["year"]),
                total_score=float(row["total_score"]),
                weeks_on_chart=int(row["weeks_on_chart"]),
                regions_appeared=int(row["regions_appeared"]),
                max_weekly_score=float(row["max_weekly_score"]),
                avg_weekly_score=float(row["avg_weekly_score"]),
                avg_score_per_week=float(row["avg_score_per_week"]),
                rsi_variance=float(row["rsi_variance"] or 0),
            ))
    return metrics


def fetch_regional_performance(year: int, start_page: int = 0) -> list[BookRegionalPerformance]:
    """Every book_regional_performance row of ``year``."""

    def build_query():
        return (
            _table("book_regional_performance")
            .select("*")
            .eq("year", year)
            .order("isbn")
            .order("region")
        )

    regional: list[BookRegionalPerformance] = []
    for rows in iter_pages(build_query, start_page=start_page):
        for row in rows:
            regional.append(BookRegionalPerformance(
                isbn=row["isbn"],
                year=int(row["year"]),
                region=row["region"],
                regional_score=float(row["regional_score"]),
                weeks_on_chart=int(row["weeks_on_chart"]),
                best_rank=int(row["best_rank"]),
                avg_rank=float(row["avg_rank"]),
                avg_score_per_week=float(row["avg_score_per_week"]),
                regional_strength_index=float(row["regional_strength_index"] or 0),
            ))
    return regional


def fetch_book_metadata(isbns: Iterable[str]) -> dict[str, BookMetadata]:
    """Title/author per isbn from distinct_books."""
    isbns = sorted(set(isbns))
    result: dict[str, BookMetadata] = {}
    for chunk in _chunks(isbns, IN_FILTER_CHUNK_SIZE):
        resp = (
            _table("distinct_books")
            .select("isbn, title, author")
            .in_("isbn", list(chunk))
            .execute()
        )
        for row in resp.data or []:
            result[row["isbn"]] = BookMetadata(
                isbn=row["isbn"],
                title=row.get("title") or "",
                author=row.get("author") or "",
            )
    return result


# --- Upserts ---


def _upsert_chunked(
    table: str, rows: list[dict], on_conflict: str, chunk_size: int = UPSERT_CHUNK_SIZE
) -> UpsertReport:
    report = UpsertReport(table=table)
    if not rows:
        return report

    for index, chunk in enumerate(_chunks(rows, chunk_size)):
        try:
            _table(table).upsert(list(chunk), on_conflict=on_conflict).execute()
        except Exception as e:
            logger.error(
                "%s upsert failed: chunk=%d, rows=%d, error=%s", table, index, len(chunk), e,
            )
            report.failed_chunks.append(ChunkFailure(chunk_index=index, row_count=len(chunk), error=str(e)))
            continue
        report.rows_written += len(chunk)

    logger.info(
        "%s: upserted %d rows, %d failed chunks", table, report.rows_written, len(report.failed_chunks),
    )
    return report


def upsert_weekly_scores(scores: Iterable[WeeklyScore]) -> UpsertReport:
    return _upsert_chunked(
        "weekly_scores", [s.to_row() for s in scores], "isbn,region,week_date,category",
    )


def upsert_performance_metrics(metrics: Iterable[BookPerformanceMetrics]) -> UpsertReport:
    return _upsert_chunked(
        "book_performance_metrics", [m.to_row() for m in metrics], "isbn,year",
    )


def upsert_regional_performance(regional: Iterable[BookRegionalPerformance]) -> UpsertReport:
    return _upsert_chunked(
        "book_regional_performance", [r.to_row() for r in regional], "isbn,region,year",
    )
