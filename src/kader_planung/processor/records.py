"""
Record assembly.

Pure transformations from (club, player, analysis, percentile) into the
flat ``KaderPlanungRecord`` and the list-ranking pass over all records.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..core.models import Club, HistoricalAnalysis, KaderPlanungRecord, Player
from ..core.types import DATA_NOT_AVAILABLE


def format_decimal(value: float) -> str:
    """One decimal place with a comma separator (62.5 -> "62,5")."""
    return f"{value:.1f}".replace(".", ",", 1)


def calculate_club_id_prefixes(club_id: str) -> tuple[str, str, str]:
    """First 1, 2 and 3 characters of the club id."""
    return club_id[:1], club_id[:2], club_id[:3]


def create_record(
    club: Club,
    player: Player,
    analysis: Optional[HistoricalAnalysis] = None,
    percentile: Optional[float] = None,
) -> KaderPlanungRecord:
    """
    Build the output record for one player.

    Without an analysis (or with an analysis that found no history) every
    history-derived field carries DATA_NOT_AVAILABLE. With history but no
    games in the last 12 months the success rate is "0,0".
    """
    prefix1, prefix2, prefix3 = calculate_club_id_prefixes(club.id)

    dwz_12_months_ago = DATA_NOT_AVAILABLE
    games = DATA_NOT_AVAILABLE
    success_rate = DATA_NOT_AVAILABLE

    if analysis is not None and analysis.has_historical_data:
        dwz_12_months_ago = analysis.dwz_12_months_ago
        games = str(analysis.games_last_12_months)
        if analysis.games_last_12_months > 0:
            success_rate = format_decimal(analysis.success_rate_last_12_months)
        else:
            success_rate = "0,0"

    return KaderPlanungRecord(
        club_id_prefix1=prefix1,
        club_id_prefix2=prefix2,
        club_id_prefix3=prefix3,
        club_name=club.name,
        club_id=club.id,
        player_id=player.id,
        lastname=player.name,
        firstname=player.firstname,
        birthyear=player.birth_year,
        gender=player.gender,
        current_dwz=player.current_dwz,
        dwz_12_months_ago=dwz_12_months_ago,
        games_last_12_months=games,
        success_rate_last_12_months=success_rate,
        somatogram_percentile=(
            format_decimal(percentile) if percentile is not None else DATA_NOT_AVAILABLE
        ),
    )


def calculate_list_ranking(values: Iterable[int]) -> list[int]:
    """
    Standard competition ranking, highest value first.

    Ties share a rank and the next distinct value is ranked by its
    1-based position: [1800, 1600, 1600, 1400] -> [1, 2, 2, 4].
    """
    values = list(values)
    order = sorted(range(len(values)), key=lambda i: values[i], reverse=True)
    ranks = [0] * len(values)
    for position, index in enumerate(order):
        if position > 0 and values[index] == values[order[position - 1]]:
            ranks[index] = ranks[order[position - 1]]
        else:
            ranks[index] = position + 1
    return ranks


def apply_rankings(records: list[KaderPlanungRecord]) -> list[KaderPlanungRecord]:
    """Return copies of ``records`` with ``list_ranking`` set by current DWZ."""
    ranks = calculate_list_ranking(record.current_dwz for record in records)
    return [
        record.model_copy(update={"list_ranking": rank})
        for record, rank in zip(records, ranks)
    ]


def apply_percentiles(
    records: list[KaderPlanungRecord],
    percentiles: dict[str, float],
) -> list[KaderPlanungRecord]:
    """Return copies of ``records`` with the somatogram percentile filled in."""
    return [
        record.model_copy(
            update={
                "somatogram_percentile": (
                    format_decimal(percentiles[record.player_id])
                    if record.player_id in percentiles
                    else DATA_NOT_AVAILABLE
                )
            }
        )
        for record in records
    ]
