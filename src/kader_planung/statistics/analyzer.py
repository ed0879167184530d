"""
Percentile statistics over the player population ("Somatogramm").

Players are grouped by (gender, age). Groups smaller than the minimum
sample size are dropped; for every remaining group a percentile table
(percentile 0..100 -> DWZ threshold) is built, and each member's DWZ is
mapped back to an interpolated percentile rank within its group.

Methodology:
- Age = reference year - birth year
- Percentile p over sorted values v[0..n-1]: rank = p * (n - 1) / 100,
  linear interpolation between v[floor(rank)] and v[floor(rank) + 1],
  truncated to an integer threshold
- Lookup: lowest p whose threshold >= value, interpolated between the
  bracketing percentiles; values above the top threshold saturate at 100
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field

from ..core.models import Player
from ..core.types import GENDER_CODES, MAX_STATISTICS_AGE, MIN_STATISTICS_AGE

logger = logging.getLogger(__name__)

GroupKey = tuple[str, int]

_GENDER_ALIASES = {
    "1": "m",
    "m": "m",
    "male": "m",
    "0": "w",
    "w": "w",
    "female": "w",
    "2": "d",
    "d": "d",
    "divers": "d",
}


# =============================================================================
# Pure functions
# =============================================================================


def normalize_gender(value: Any) -> Optional[str]:
    """Map API gender codes to m/w/d; unknown values return None."""
    if value is None:
        return None
    return _GENDER_ALIASES.get(str(value).strip().lower())


def calculate_percentiles(values: Sequence[int]) -> dict[int, int]:
    """
    Build a percentile table for the given metric values.

    Returns:
        Mapping percentile (0..100) -> threshold; empty for no values
    """
    if not values:
        return {}

    ordered = sorted(values)
    n = len(ordered)
    table: dict[int, int] = {}

    for p in range(101):
        if p == 0:
            table[p] = ordered[0]
        elif p == 100:
            table[p] = ordered[-1]
        else:
            rank = p * (n - 1) / 100
            lower = math.floor(rank)
            upper = lower + 1
            if upper >= n:
                table[p] = ordered[-1]
            else:
                fraction = rank - lower
                # Truncation, not rounding
                table[p] = int(ordered[lower] * (1 - fraction) + ordered[upper] * fraction)

    return table


def find_percentile(value: int, table: dict[int, int]) -> Optional[float]:
    """
    Map a metric value to its percentile rank within a percentile table.

    Returns:
        Interpolated percentile, 100.0 above the top threshold, None for an
        empty table
    """
    if not table:
        return None

    percentiles = sorted(table)
    for i, p in enumerate(percentiles):
        threshold = table[p]
        if value > threshold:
            continue
        if i == 0:
            return float(p)

        prev_p = percentiles[i - 1]
        prev_threshold = table[prev_p]
        if threshold == prev_threshold:
            return float(p)
        ratio = (value - prev_threshold) / (threshold - prev_threshold)
        return prev_p + ratio * (p - prev_p)

    return 100.0


def calculate_average(values: Sequence[int]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def calculate_median(values: Sequence[int]) -> float:
    """Middle value, or the mean of the two middle values for even counts."""
    if not values:
        return 0.0
    ordered = sorted(values)
    n = len(ordered)
    mid = n // 2
    if n % 2 == 1:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


# =============================================================================
# Result types
# =============================================================================


@dataclass
class AgeGenderGroup:
    """Players sharing one (gender, age) key. Built fresh per run."""

    gender: str
    age: int
    players: list[Player] = field(default_factory=list)
    percentiles: dict[int, int] = field(default_factory=dict)

    @property
    def key(self) -> GroupKey:
        return (self.gender, self.age)

    @property
    def values(self) -> list[int]:
        return [player.current_dwz for player in self.players]

    @property
    def sample_size(self) -> int:
        return len(self.players)

    @property
    def avg_dwz(self) -> float:
        return calculate_average(self.values)

    @property
    def median_dwz(self) -> float:
        return calculate_median(self.values)


@dataclass
class StatisticsResult:
    """Outcome of one statistics pass."""

    groups: dict[GroupKey, AgeGenderGroup] = field(default_factory=dict)
    excluded_groups: list[GroupKey] = field(default_factory=list)
    player_percentiles: dict[str, float] = field(default_factory=dict)
    total_valid_players: int = 0


class PercentileData(BaseModel):
    age: int
    sample_size: int
    avg_dwz: float
    median_dwz: float
    percentiles: dict[int, int]


class SomatogrammMetadata(BaseModel):
    generated_at: datetime
    gender: str
    total_players: int
    valid_age_groups: int
    min_sample_size: int


class SomatogrammData(BaseModel):
    """Per-gender statistics report, keyed by age."""

    metadata: SomatogrammMetadata
    percentiles: dict[str, PercentileData] = Field(default_factory=dict)


# =============================================================================
# Analyzer
# =============================================================================


class StatisticalAnalyzer:
    """
    Computes age/gender percentile statistics for a player population.

    The analyzer holds no state between calls; ``reference_year`` pins the
    year used for ages (defaults to the current year).
    """

    def __init__(
        self,
        min_sample_size: int = 100,
        reference_year: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.min_sample_size = min_sample_size
        self.reference_year = reference_year or datetime.now(timezone.utc).year
        self.logger = logger or logging.getLogger(__name__)

    def age_of(self, player: Player) -> Optional[int]:
        if player.birth_year is None:
            return None
        return self.reference_year - player.birth_year

    def filter_valid_players(self, players: Sequence[Player]) -> list[Player]:
        """Keep players with a rating, a birth year, a plausible age and a known gender."""
        valid = []
        for player in players:
            age = self.age_of(player)
            if player.current_dwz <= 0 or age is None:
                continue
            if not MIN_STATISTICS_AGE <= age <= MAX_STATISTICS_AGE:
                continue
            if normalize_gender(player.gender) is None:
                continue
            valid.append(player)

        self.logger.debug("Filtered %d valid players from %d", len(valid), len(players))
        return valid

    def group_players_by_age_and_gender(
        self, players: Sequence[Player]
    ) -> dict[GroupKey, AgeGenderGroup]:
        groups: dict[GroupKey, AgeGenderGroup] = {}
        for player in players:
            age = self.age_of(player)
            gender = normalize_gender(player.gender)
            if age is None or gender is None:
                continue
            key = (gender, age)
            if key not in groups:
                groups[key] = AgeGenderGroup(gender=gender, age=age)
            groups[key].players.append(player)
        return groups

    def filter_groups_by_sample_size(
        self, groups: dict[GroupKey, AgeGenderGroup]
    ) -> tuple[dict[GroupKey, AgeGenderGroup], list[GroupKey]]:
        """
        Split groups by the minimum sample size.

        Returns:
            Tuple of (qualifying groups, keys of excluded groups), both sorted
            by gender then age
        """
        valid: dict[GroupKey, AgeGenderGroup] = {}
        excluded: list[GroupKey] = []
        for group in sorted(groups.values(), key=lambda g: g.key):
            if group.sample_size >= self.min_sample_size:
                valid[group.key] = group
            else:
                excluded.append(group.key)
                self.logger.debug(
                    "Skipping age %d, gender %s: only %d players (minimum: %d)",
                    group.age,
                    group.gender,
                    group.sample_size,
                    self.min_sample_size,
                )
        return valid, excluded

    def build_percentile_tables(self, groups: dict[GroupKey, AgeGenderGroup]) -> None:
        for group in groups.values():
            group.percentiles = calculate_percentiles(group.values)

    def compute(self, players: Sequence[Player]) -> StatisticsResult:
        """
        Run the full statistics pass over a complete population.

        Returns:
            StatisticsResult with qualifying groups, excluded group keys and
            the percentile rank of every player in a qualifying group
        """
        valid_players = self.filter_valid_players(players)
        groups = self.group_players_by_age_and_gender(valid_players)
        qualifying, excluded = self.filter_groups_by_sample_size(groups)
        self.build_percentile_tables(qualifying)

        player_percentiles: dict[str, float] = {}
        for group in qualifying.values():
            for player in group.players:
                percentile = find_percentile(player.current_dwz, group.percentiles)
                if percentile is not None:
                    player_percentiles[player.id] = percentile

        self.logger.info(
            "%d of %d age/gender groups meet minimum sample size %d (%d players with percentile)",
            len(qualifying),
            len(groups),
            self.min_sample_size,
            len(player_percentiles),
        )
        return StatisticsResult(
            groups=qualifying,
            excluded_groups=excluded,
            player_percentiles=player_percentiles,
            total_valid_players=len(valid_players),
        )

    def build_report(self, result: StatisticsResult) -> dict[str, SomatogrammData]:
        """Per-gender report of the qualifying groups, keyed by gender code."""
        generated_at = datetime.now(timezone.utc)
        report: dict[str, SomatogrammData] = {}

        by_gender: dict[str, list[AgeGenderGroup]] = {}
        for group in result.groups.values():
            by_gender.setdefault(group.gender, []).append(group)

        for gender in GENDER_CODES:
            if gender not in by_gender:
                continue
            groups = sorted(by_gender[gender], key=lambda g: g.age)
            report[gender] = SomatogrammData(
                metadata=SomatogrammMetadata(
                    generated_at=generated_at,
                    gender=gender,
                    total_players=sum(g.sample_size for g in groups),
                    valid_age_groups=len(groups),
                    min_sample_size=self.min_sample_size,
                ),
                percentiles={
                    str(g.age): PercentileData(
                        age=g.age,
                        sample_size=g.sample_size,
                        avg_dwz=g.avg_dwz,
                        median_dwz=g.median_dwz,
                        percentiles=g.percentiles,
                    )
                    for g in groups
                },
            )
        return report

    def process_players(self, players: Sequence[Player]) -> dict[str, SomatogrammData]:
        """Statistics report for a population (see ``build_report``)."""
        return self.build_report(self.compute(players))
