"""
Pydantic models for Kader-Planung entities.

These models are used for:
- Validating data from the Portal64 API
- Persisting intermediate results in the checkpoint file
- The flat output record written to CSV/JSON/Excel
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .types import DATA_NOT_AVAILABLE


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Core Entity Models
# =============================================================================


class Club(BaseModel):
    """Chess club as returned by the club listing."""

    model_config = ConfigDict(extra="ignore")

    id: str  # Format: C0101
    name: str = ""
    short_name: str = ""
    region: str = ""
    district: str = ""
    member_count: int = 0
    average_dwz: float = 0.0
    status: str = ""


class Player(BaseModel):
    """Club member as returned by the club player listing."""

    model_config = ConfigDict(extra="ignore")

    id: str  # Format: C0101-123
    name: str = ""  # Last name
    firstname: str = ""
    club: str = ""
    club_id: str = ""
    birth_year: Optional[int] = None
    gender: str = ""
    nation: str = ""
    fide_id: int = 0
    current_dwz: int = 0
    dwz_index: int = 0
    status: str = ""

    @field_validator("gender", mode="before")
    @classmethod
    def _gender_as_string(cls, value: Any) -> str:
        # The API sends either letters or the numeric Geschlecht code
        if value is None:
            return ""
        return str(value)

    @field_validator("fide_id", "current_dwz", "dwz_index", mode="before")
    @classmethod
    def _null_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


# =============================================================================
# Rating History Models
# =============================================================================


class TournamentResult(BaseModel):
    """A single rating-history row in the API wire format."""

    model_config = ConfigDict(extra="ignore")

    id: int = 0
    tournament_id: str = ""
    tournament_name: str = ""
    tournament_date: Optional[datetime] = None
    e_coefficient: int = 0
    we: float = 0.0
    achievement: int = 0
    level: int = 0
    games: int = 0
    unrated_games: int = 0
    points: float = 0.0
    dwz_old: int = 0
    dwz_old_index: int = 0
    dwz_new: int = 0
    dwz_new_index: int = 0


class RatingPoint(BaseModel):
    """A single point in a player's rating history."""

    date: datetime
    dwz: int
    games: int = 0
    points: float = 0.0
    tournament: str = ""

    @field_validator("date")
    @classmethod
    def _date_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class RatingHistory(BaseModel):
    """A player's complete rating history."""

    player_id: str
    points: list[RatingPoint] = Field(default_factory=list)


class HistoricalAnalysis(BaseModel):
    """Statistics derived from a player's rating history."""

    dwz_12_months_ago: str = DATA_NOT_AVAILABLE
    games_last_12_months: int = 0
    success_rate_last_12_months: float = 0.0
    has_historical_data: bool = False


# =============================================================================
# Output Record
# =============================================================================


class KaderPlanungRecord(BaseModel):
    """
    One row of the final report.

    Records are immutable; the percentile and ranking passes produce
    updated copies via ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    club_id_prefix1: str = ""
    club_id_prefix2: str = ""
    club_id_prefix3: str = ""
    club_name: str = ""
    club_id: str = ""
    player_id: str
    lastname: str = ""
    firstname: str = ""
    birthyear: Optional[int] = None
    gender: str = ""
    current_dwz: int = 0
    list_ranking: int = 0
    dwz_12_months_ago: str = DATA_NOT_AVAILABLE
    games_last_12_months: str = DATA_NOT_AVAILABLE
    success_rate_last_12_months: str = DATA_NOT_AVAILABLE
    somatogram_percentile: str = DATA_NOT_AVAILABLE

    @classmethod
    def field_names(cls) -> list[str]:
        """Column order used by the tabular exporters."""
        return list(cls.model_fields)
