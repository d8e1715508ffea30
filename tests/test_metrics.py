"""metrics module unit tests."""

import math
from datetime import date, timedelta

import pytest

from bestseller_metrics.metrics import (
    aggregate_book,
    aggregate_year,
    calculate_rsi,
    calculate_rsi_variance,
)
from bestseller_metrics.models import RankObservation, WeeklyScore
from bestseller_metrics.scoring import score_observations

START = date(2025, 1, 1)


def _score(isbn, region, week, rank, points, category="Fiction", list_size=20):
    return WeeklyScore(
        isbn=isbn,
        region=region,
        week_date=START + timedelta(weeks=week),
        category=category,
        rank=rank,
        list_size=list_size,
        points=points,
    )


class TestCalculateRsi:
    """calculate_rsi tests."""

    def test_shares_sum_to_one(self):
        rsi = calculate_rsi({"PNBA": 30.0, "SIBA": 10.0})
        assert rsi == {"PNBA": 0.75, "SIBA": 0.25}

    def test_zero_total(self):
        assert calculate_rsi({"PNBA": 0.0, "SIBA": 0.0}) == {"PNBA": 0.0, "SIBA": 0.0}


class TestCalculateRsiVariance:
    """calculate_rsi_variance tests."""

    def test_single_value_is_zero(self):
        assert calculate_rsi_variance([1.0]) == 0.0

    def test_empty_is_zero(self):
        assert calculate_rsi_variance([]) == 0.0

    def test_population_variance(self):
        assert math.isclose(calculate_rsi_variance([0.25, 0.75]), 0.0625)


class TestAggregateBook:
    """aggregate_book tests."""

    def test_single_region_scenario(self):
        """Rank 1 of 20 for four weeks in one region only."""
        observations = [
            RankObservation("X", "PNBA", START + timedelta(weeks=w), 1, "Hardcover Fiction", list_size=20)
            for w in range(4)
        ]
        metrics, regional = aggregate_book("X", 2025, score_observations(observations))

        assert len(regional) == 1
        assert math.isclose(regional[0].regional_score, metrics.total_score)
        assert math.isclose(regional[0].regional_strength_index, 1.0)
        assert metrics.rsi_variance == 0
        assert metrics.weeks_on_chart == 4
        assert metrics.regions_appeared == 1
        assert math.isclose(metrics.avg_score_per_week, 100.0)
        assert regional[0].best_rank == 1

    def test_regional_sums_match_total(self):
        scores = [
            _score("b", "PNBA", 0, 1, 100.0),
            _score("b", "PNBA", 1, 3, 60.0),
            _score("b", "SIBA", 0, 2, 75.0),
            _score("b", "GLIBA", 2, 5, 40.0),
        ]
        metrics, regional = aggregate_book("b", 2025, scores)

        assert math.isclose(sum(r.regional_score for r in regional), metrics.total_score, rel_tol=1e-6)
        assert math.isclose(sum(r.regional_strength_index for r in regional), 1.0, rel_tol=1e-6)
        assert [r.region for r in regional] == ["GLIBA", "PNBA", "SIBA"]

    def test_book_level_fields(self):
        scores = [
            _score("b", "PNBA", 0, 1, 100.0),
            _score("b", "SIBA", 0, 2, 50.0),
            _score("b", "PNBA", 1, 4, 30.0),
        ]
        metrics, regional = aggregate_book("b", 2025, scores)

        assert metrics.total_score == 180.0
        assert metrics.weeks_on_chart == 2  # distinct weeks anywhere
        assert metrics.max_weekly_score == 100.0
        assert metrics.avg_weekly_score == 60.0
        assert metrics.avg_score_per_week == metrics.total_score / metrics.weeks_on_chart

        pnba = next(r for r in regional if r.region == "PNBA")
        assert pnba.weeks_on_chart == 2
        assert pnba.best_rank == 1
        assert pnba.avg_rank == 2.5
        assert pnba.avg_score_per_week == 65.0

    def test_zero_scores_do_not_produce_nan(self):
        scores = [_score("z", "PNBA", 0, 0, 0.0), _score("z", "SIBA", 0, 0, 0.0)]
        metrics, regional = aggregate_book("z", 2025, scores)

        assert metrics.total_score == 0
        assert all(r.regional_strength_index == 0 for r in regional)
        assert metrics.rsi_variance == 0

    def test_even_spread_has_low_variance(self):
        shares = [0.12, 0.13, 0.11, 0.14, 0.12, 0.13, 0.12, 0.13]
        regions = ["CALIBAN", "CALIBAS", "GLIBA", "MIBA", "MPIBA", "NAIBA", "NEIBA", "PNBA"]
        scores = [_score("Y", region, 0, 1, share * 1000) for region, share in zip(regions, shares)]
        metrics, _ = aggregate_book("Y", 2025, scores)

        assert metrics.regions_appeared == 8
        assert metrics.rsi_variance < 0.001

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            aggregate_book("none", 2025, [])


class TestAggregateYear:
    """aggregate_year tests."""

    def _observations(self):
        return [
            RankObservation("a", "PNBA", START, 1, "Fiction"),
            RankObservation("b", "PNBA", START, 2, "Fiction"),
            RankObservation("b", "SIBA", START, 1, None),
            RankObservation("a", "SIBA", START + timedelta(weeks=1), 3, None),
            RankObservation("c", "SIBA", START + timedelta(weeks=1), 1, None),
            RankObservation("b", "SIBA", START + timedelta(weeks=1), 2, None),
        ]

    def test_groups_by_isbn(self):
        metrics, regional = aggregate_year(2025, score_observations(self._observations()))

        assert [m.isbn for m in metrics] == ["a", "b", "c"]
        assert len(regional) == 5

    def test_ignores_other_years(self):
        scores = [_score("a", "PNBA", 0, 1, 100.0)]
        scores.append(WeeklyScore("a", "PNBA", date(2024, 12, 25), "Fiction", 1, 20, 100.0))
        metrics, _ = aggregate_year(2025, scores)

        assert metrics[0].total_score == 100.0

    def test_recomputation_is_identical(self):
        first = aggregate_year(2025, score_observations(self._observations()))
        second = aggregate_year(2025, score_observations(list(reversed(self._observations()))))

        assert first == second
