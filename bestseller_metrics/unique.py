"""Region-unique discovery: books that charted in only one region over the lookback."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Mapping

from bestseller_metrics.models import BookMetadata, RankObservation, UniqueBook
from bestseller_metrics.scoring import normalize_category

logger = logging.getLogger(__name__)


def find_unique_books(
    region: str,
    region_observations: Iterable[RankObservation],
    isbn_regions: Mapping[str, set[str]],
    metadata: Mapping[str, BookMetadata] | None = None,
) -> list[UniqueBook]:
    """Books whose only charting region is ``region``.

    Args:
        region: target region
        region_observations: the target region's observations in the window
        isbn_regions: isbn -> every region it charted in over the same window
        metadata: optional title/author lookup

    Returns:
        UniqueBook list, most recently first-seen first.
    """
    metadata = metadata or {}
    appearances: dict[str, list[RankObservation]] = defaultdict(list)
    for o in region_observations:
        if o.region == region:
            appearances[o.isbn].append(o)

    books: list[UniqueBook] = []
    for isbn, rows in appearances.items():
        regions = isbn_regions.get(isbn, {region})
        if regions != {region}:
            continue

        rows.sort(key=lambda o: o.week_date)
        first, last = rows[0], rows[-1]
        meta = metadata.get(isbn)
        books.append(UniqueBook(
            isbn=isbn,
            title=(meta.title if meta else None) or first.title or "",
            author=(meta.author if meta else None) or first.author or "",
            weeks_on_list=len({o.week_date for o in rows}),
            first_seen=first.week_date,
            last_seen=last.week_date,
            best_rank=min(o.rank for o in rows),
            current_rank=last.rank,
            category=normalize_category(first.category),
        ))

    books.sort(key=lambda b: (-b.first_seen.toordinal(), b.isbn))
    logger.info(
        "Found %d unique books out of %d listed in %s",
        len(books), len(appearances), region,
    )
    return books
