"""main module tests with the store mocked."""

from datetime import date
from unittest.mock import patch

from bestseller_metrics.errors import StoreReadError, UpsertReport
from bestseller_metrics.models import (
    BookMetadata,
    BookPerformanceMetrics,
    ElsewhereFilters,
    RankObservation,
)

WEEK = date(2025, 11, 5)


class TestRunWeeklyScores:
    """run_weekly_scores tests."""

    @patch("bestseller_metrics.main.db")
    def test_scores_and_upserts(self, mock_db):
        from bestseller_metrics.main import run_weekly_scores

        mock_db.iter_observations.return_value = iter([
            RankObservation("a", "PNBA", WEEK, 1, "Fiction"),
            RankObservation("b", "PNBA", WEEK, 2, "Fiction"),
        ])
        mock_db.upsert_weekly_scores.return_value = UpsertReport("weekly_scores", rows_written=2)

        report = run_weekly_scores(WEEK, "PNBA")

        mock_db.iter_observations.assert_called_once_with(region="PNBA", since=WEEK, until=WEEK)
        scores = mock_db.upsert_weekly_scores.call_args.args[0]
        assert [s.list_size for s in scores] == [2, 2]
        assert report.rows_written == 2

    @patch("bestseller_metrics.main.db")
    def test_no_observations(self, mock_db):
        from bestseller_metrics.main import run_weekly_scores

        mock_db.iter_observations.return_value = iter([])

        report = run_weekly_scores(WEEK, "PNBA")

        mock_db.upsert_weekly_scores.assert_not_called()
        assert report.rows_written == 0


class TestRunBackfillScores:
    """run_backfill_scores tests."""

    @patch("bestseller_metrics.main.db")
    def test_failed_pair_does_not_stop_others(self, mock_db):
        from bestseller_metrics.main import run_backfill_scores

        later = date(2025, 11, 12)
        mock_db.fetch_region_weeks.return_value = [(WEEK, "PNBA"), (WEEK, "SIBA"), (later, "PNBA")]

        def observations(region, since, until):
            if region == "SIBA":
                raise StoreReadError("store read failed", page_index=0)
            return iter([RankObservation("a", region, since, 1, "Fiction")])

        mock_db.iter_observations.side_effect = observations
        mock_db.upsert_weekly_scores.return_value = UpsertReport("weekly_scores", rows_written=1)

        reports, failed = run_backfill_scores(2025)

        mock_db.fetch_region_weeks.assert_called_once_with(2025)
        assert failed == [(WEEK, "SIBA")]
        assert sorted(reports) == [(WEEK, "PNBA"), (later, "PNBA")]
        assert mock_db.upsert_weekly_scores.call_count == 2


class TestRunUpdateMetrics:
    """run_update_metrics tests."""

    @patch("bestseller_metrics.main.db")
    def test_aggregates_and_upserts(self, mock_db):
        from bestseller_metrics.main import run_update_metrics
        from bestseller_metrics.scoring import score_observations

        mock_db.fetch_weekly_scores.return_value = score_observations([
            RankObservation("a", "PNBA", WEEK, 1, "Fiction"),
            RankObservation("a", "SIBA", WEEK, 1, "Fiction"),
        ])
        mock_db.upsert_performance_metrics.return_value = UpsertReport("book_performance_metrics", 1)
        mock_db.upsert_regional_performance.return_value = UpsertReport("book_regional_performance", 2)

        reports = run_update_metrics(2025)

        metrics = mock_db.upsert_performance_metrics.call_args.args[0]
        regional = mock_db.upsert_regional_performance.call_args.args[0]
        assert [m.regions_appeared for m in metrics] == [2]
        assert [r.regional_strength_index for r in regional] == [0.5, 0.5]
        assert all(r.ok for r in reports)


class TestRunRankings:
    """run_rankings tests."""

    @patch("bestseller_metrics.main.db")
    def test_decorates_with_metadata(self, mock_db):
        from bestseller_metrics.main import run_rankings

        mock_db.fetch_performance_metrics.return_value = [
            BookPerformanceMetrics("a", 2025, 400.0, 4, 1, 100.0, 100.0, 100.0, 0.0),
        ]
        mock_db.fetch_regional_performance.return_value = []
        mock_db.fetch_book_metadata.return_value = {"a": BookMetadata("a", "Title", "Author")}

        rankings = run_rankings("most_efficient", 2025)

        assert [(r.isbn, r.title, r.author) for r in rankings] == [("a", "Title", "Author")]


class TestRunElsewhere:
    """run_elsewhere tests."""

    @patch("bestseller_metrics.main.db")
    def test_excludes_target_region_books(self, mock_db):
        from bestseller_metrics.main import run_elsewhere

        target_rows = [RankObservation("known", "PNBA", date(2025, 3, 5), 1)]
        recent_rows = [
            RankObservation("known", "SIBA", WEEK, 1, title="K", author="K"),
            RankObservation("new", "SIBA", WEEK, 2, title="N", author="N"),
        ]
        mock_db.iter_observations.side_effect = [iter(target_rows), iter(recent_rows)]

        page = run_elsewhere(ElsewhereFilters(target_region="PNBA"), today=date(2025, 11, 10))

        assert [b.isbn for b in page.books] == ["new"]
        first_call, second_call = mock_db.iter_observations.call_args_list
        assert first_call.kwargs["region"] == "PNBA"
        assert first_call.kwargs["since"] == date(2024, 11, 10)
        assert second_call.kwargs == {"exclude_region": "PNBA", "since": date(2025, 10, 13)}
        mock_db.fetch_book_metadata.assert_not_called()

    @patch("bestseller_metrics.main.db")
    def test_custom_windows(self, mock_db):
        from bestseller_metrics.main import run_elsewhere

        mock_db.iter_observations.side_effect = [iter([]), iter([])]

        run_elsewhere(
            ElsewhereFilters(target_region="PNBA"), today=date(2025, 11, 10),
            lookback_days=30, recency_days=7,
        )

        first_call, second_call = mock_db.iter_observations.call_args_list
        assert first_call.kwargs["since"] == date(2025, 10, 11)
        assert second_call.kwargs["since"] == date(2025, 11, 3)


class TestRunUnique:
    """run_unique tests."""

    @patch("bestseller_metrics.main.db")
    def test_unique_books(self, mock_db):
        from bestseller_metrics.main import run_unique

        mock_db.iter_observations.return_value = iter([
            RankObservation("only", "NEIBA", WEEK, 3),
            RankObservation("both", "NEIBA", WEEK, 1),
        ])
        mock_db.fetch_isbn_regions.return_value = {"only": {"NEIBA"}, "both": {"NEIBA", "SIBA"}}

        books = run_unique("NEIBA", today=date(2025, 11, 10))

        assert [b.isbn for b in books] == ["only"]
        mock_db.fetch_isbn_regions.assert_called_once_with(["both", "only"], date(2024, 11, 10))
