"""Weekly score calculation.

A placement is worth ``100 * (1 - ln(rank) / ln(list_size + 1))`` points:
rank 1 always earns 100, the last place still earns a little more than 0, and
the gap between neighbouring ranks shrinks as the rank grows.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import Iterable

from bestseller_metrics.config import DEFAULT_CATEGORY
from bestseller_metrics.models import RankObservation, WeeklyScore

logger = logging.getLogger(__name__)


def calculate_weekly_score(rank: int, list_size: int) -> float:
    """Return the points for ``rank`` on a list of ``list_size`` entries.

    Malformed input (``rank < 1``, ``list_size < 1`` or a rank beyond the
    end of the list) scores 0.
    """
    if rank < 1 or list_size < 1 or rank > list_size:
        return 0.0
    return 100 * (1 - math.log(rank) / math.log(list_size + 1))


def normalize_category(category: str | None) -> str:
    """Map a missing or blank list subsection to "General"."""
    if category is None or not category.strip():
        return DEFAULT_CATEGORY
    return category.strip()


def score_observations(observations: Iterable[RankObservation]) -> list[WeeklyScore]:
    """Score a batch of observations.

    Observations without a known ``list_size`` get the number of entries that
    share their region, week and category.
    """
    observations = list(observations)
    list_sizes = Counter(
        (o.region, o.week_date, normalize_category(o.category)) for o in observations
    )

    scores: list[WeeklyScore] = []
    malformed = 0
    for o in observations:
        category = normalize_category(o.category)
        list_size = (
            o.list_size if o.list_size is not None
            else list_sizes[(o.region, o.week_date, category)]
        )
        points = calculate_weekly_score(o.rank, list_size)
        if points == 0.0:
            malformed += 1
        scores.append(WeeklyScore(
            isbn=o.isbn,
            region=o.region,
            week_date=o.week_date,
            category=category,
            rank=o.rank,
            list_size=list_size,
            points=points,
        ))

    if malformed:
        logger.warning("%d malformed observations scored as 0", malformed)
    return scores
