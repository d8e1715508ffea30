"""scoring module unit tests."""

import math
from datetime import date

from bestseller_metrics.models import RankObservation
from bestseller_metrics.scoring import (
    calculate_weekly_score,
    normalize_category,
    score_observations,
)

WEEK = date(2025, 11, 5)


class TestCalculateWeeklyScore:
    """calculate_weekly_score tests."""

    def test_rank_one_is_100(self):
        for list_size in (1, 5, 10, 15, 20, 100):
            assert math.isclose(calculate_weekly_score(1, list_size), 100.0)

    def test_strictly_decreasing(self):
        scores = [calculate_weekly_score(rank, 20) for rank in range(1, 21)]
        assert all(a > b for a, b in zip(scores, scores[1:]))

    def test_last_place_positive(self):
        for list_size in (1, 2, 10, 20):
            assert calculate_weekly_score(list_size, list_size) > 0

    def test_top_gap_larger_than_bottom_gap(self):
        top_gap = calculate_weekly_score(1, 10) - calculate_weekly_score(2, 10)
        bottom_gap = calculate_weekly_score(9, 10) - calculate_weekly_score(10, 10)
        assert top_gap > bottom_gap

    def test_known_value(self):
        expected = 100 * (1 - math.log(5) / math.log(16))
        assert math.isclose(calculate_weekly_score(5, 15), expected)

    def test_degenerate_input_scores_zero(self):
        assert calculate_weekly_score(0, 10) == 0
        assert calculate_weekly_score(-3, 10) == 0
        assert calculate_weekly_score(1, 0) == 0
        assert calculate_weekly_score(5, -1) == 0

    def test_rank_beyond_list_scores_zero(self):
        assert calculate_weekly_score(12, 10) == 0


class TestNormalizeCategory:
    """normalize_category tests."""

    def test_none_is_general(self):
        assert normalize_category(None) == "General"

    def test_blank_is_general(self):
        assert normalize_category("  ") == "General"

    def test_keeps_name(self):
        assert normalize_category("Hardcover Fiction") == "Hardcover Fiction"


class TestScoreObservations:
    """score_observations tests."""

    def test_list_size_counted_per_category(self):
        observations = [
            RankObservation("a", "PNBA", WEEK, 1, "Hardcover Fiction"),
            RankObservation("b", "PNBA", WEEK, 2, "Hardcover Fiction"),
            RankObservation("c", "PNBA", WEEK, 1, None),
        ]
        scores = score_observations(observations)

        assert [s.list_size for s in scores] == [2, 2, 1]
        assert scores[2].category == "General"
        assert math.isclose(scores[0].points, 100.0)
        assert math.isclose(scores[2].points, 100.0)

    def test_explicit_list_size_wins(self):
        scores = score_observations([RankObservation("a", "PNBA", WEEK, 3, "Fiction", list_size=15)])
        assert scores[0].list_size == 15
        assert math.isclose(scores[0].points, calculate_weekly_score(3, 15))

    def test_malformed_row_does_not_abort_batch(self):
        observations = [
            RankObservation("a", "SIBA", WEEK, 0, "Fiction"),
            RankObservation("b", "SIBA", WEEK, 1, "Fiction"),
        ]
        scores = score_observations(observations)

        assert len(scores) == 2
        assert scores[0].points == 0
        assert math.isclose(scores[1].points, 100.0)

    def test_zero_list_size_scores_zero(self):
        scores = score_observations([RankObservation("a", "PNBA", WEEK, 1, "Fiction", list_size=0)])
        assert scores[0].list_size == 0
        assert scores[0].points == 0

    def test_empty_batch(self):
        assert score_observations([]) == []
