"""
Tests for historical analysis of rating histories.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from kader_planung.core.models import RatingHistory, RatingPoint
from kader_planung.core.types import DATA_NOT_AVAILABLE
from kader_planung.processor.history import analyze_history, months_before

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def point(year: int, month: int, day: int, dwz: int, games: int = 0, points: float = 0.0) -> RatingPoint:
    return RatingPoint(date=datetime(year, month, day, tzinfo=timezone.utc), dwz=dwz, games=games, points=points)


class TestMonthsBefore:
    def test_plain_shift(self):
        assert months_before(NOW, 12) == datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    def test_leap_day_rolls_over(self):
        leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert months_before(leap, 12) == datetime(2023, 3, 1, tzinfo=timezone.utc)

    def test_crosses_year_boundary(self):
        assert months_before(datetime(2025, 1, 31), 2) == datetime(2024, 12, 1)

    def test_keeps_time_of_day(self):
        assert months_before(datetime(2025, 3, 31, 18, 30), 1) == datetime(2025, 3, 3, 18, 30)


class TestAnalyzeHistory:
    def test_missing_history(self):
        analysis = analyze_history(None, NOW)
        assert analysis.has_historical_data is False
        assert analysis.dwz_12_months_ago == DATA_NOT_AVAILABLE
        assert analysis.games_last_12_months == 0

    def test_empty_history(self):
        analysis = analyze_history(RatingHistory(player_id="C0327-297"), NOW)
        assert analysis.has_historical_data is False

    def test_full_analysis(self):
        history = RatingHistory(
            player_id="C0327-297",
            points=[
                point(2023, 1, 1, 1500, games=9, points=4.0),
                point(2024, 5, 1, 1550, games=6, points=3.0),
                point(2024, 8, 1, 1580, games=5, points=3.0),
                point(2025, 1, 1, 1610, games=4, points=2.5),
            ],
        )

        analysis = analyze_history(history, NOW)

        assert analysis.has_historical_data is True
        assert analysis.dwz_12_months_ago == "1550"
        assert analysis.games_last_12_months == 9
        assert analysis.success_rate_last_12_months == pytest.approx(5.5 / 9 * 100)

    def test_unordered_points(self):
        history = RatingHistory(
            player_id="C0327-297",
            points=[
                point(2024, 5, 1, 1550),
                point(2025, 1, 1, 1610, games=4, points=2.0),
                point(2023, 1, 1, 1500),
            ],
        )

        assert analyze_history(history, NOW).dwz_12_months_ago == "1550"

    def test_point_on_cutoff_is_ignored(self):
        history = RatingHistory(
            player_id="C0327-297",
            points=[
                RatingPoint(
                    date=datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc),
                    dwz=1700,
                    games=7,
                    points=7.0,
                )
            ],
        )

        analysis = analyze_history(history, NOW)

        assert analysis.has_historical_data is True
        assert analysis.dwz_12_months_ago == DATA_NOT_AVAILABLE
        assert analysis.games_last_12_months == 0

    def test_only_recent_points(self):
        history = RatingHistory(
            player_id="C0327-297",
            points=[point(2025, 2, 1, 1400, games=5, points=0.0)],
        )

        analysis = analyze_history(history, NOW)

        assert analysis.dwz_12_months_ago == DATA_NOT_AVAILABLE
        assert analysis.games_last_12_months == 5
        assert analysis.success_rate_last_12_months == 0.0

    def test_naive_now_is_utc(self):
        history = RatingHistory(player_id="C0327-297", points=[point(2024, 5, 1, 1550)])
        analysis = analyze_history(history, datetime(2025, 6, 15, 12, 0))
        assert analysis.dwz_12_months_ago == "1550"
