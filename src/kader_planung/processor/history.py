"""
Historical analysis of a player's rating history.

Derives the rating 12 months ago and the activity (games, success rate)
within the last 12 months.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..core.models import HistoricalAnalysis, RatingHistory, RatingPoint

logger = logging.getLogger(__name__)


def months_before(moment: datetime, months: int) -> datetime:
    """
    Shift ``moment`` back by whole calendar months.

    Days past the end of the target month roll over into the next month
    (e.g. 29 Feb minus 12 months is 1 Mar, 31 Jan minus 2 months is 1 Dec).
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    first = moment.replace(year=year, month=month + 1, day=1)
    return first + timedelta(days=moment.day - 1)


def analyze_history(
    history: Optional[RatingHistory],
    now: Optional[datetime] = None,
) -> HistoricalAnalysis:
    """
    Analyze a rating history relative to ``now``.

    - ``dwz_12_months_ago``: rating of the latest point strictly before the
      cutoff (now minus 12 months), else DATA_NOT_AVAILABLE
    - games/points are summed over points strictly after the cutoff
    - success rate is points / games * 100, 0 without games

    Args:
        history: Rating history, may be None or empty
        now: Reference time (defaults to current UTC time)

    Returns:
        HistoricalAnalysis; ``has_historical_data`` is False for an empty history
    """
    analysis = HistoricalAnalysis()
    if history is None or not history.points:
        return analysis

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    cutoff = months_before(now, 12)

    closest: Optional[RatingPoint] = None
    total_games = 0
    total_points = 0.0

    for point in history.points:
        if point.date < cutoff:
            if closest is None or point.date > closest.date:
                closest = point
        elif point.date > cutoff:
            total_games += point.games
            total_points += point.points

    analysis.has_historical_data = True
    if closest is not None:
        analysis.dwz_12_months_ago = str(closest.dwz)
    analysis.games_last_12_months = total_games
    if total_games > 0:
        analysis.success_rate_last_12_months = total_points / total_games * 100

    logger.debug(
        "Analyzed %d rating points for %s (games=%d, dwz_12_months_ago=%s)",
        len(history.points),
        history.player_id,
        total_games,
        analysis.dwz_12_months_ago,
    )
    return analysis
