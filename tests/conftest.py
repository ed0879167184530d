"""
Pytest configuration for kader-planung tests.

Provides an in-memory ClubDataSource with failure injection and call
counting, plus a deterministic club/player population.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

import pytest

from kader_planung.core.http import ExternalAPIError, NotFoundError
from kader_planung.core.models import Club, Player, RatingHistory, RatingPoint
from kader_planung.processor import ProcessorConfig
from kader_planung.providers.base import ClubDataSource
from kader_planung.resume import CheckpointStore, RunConfig

REFERENCE_DATE = datetime(2025, 6, 15, tzinfo=timezone.utc)


class FakeDataSource(ClubDataSource):
    """In-memory data source with failure injection."""

    def __init__(
        self,
        clubs: list[Club],
        players_by_club: dict[str, list[Player]],
        histories: dict[str, RatingHistory],
        *,
        failing_clubs: Iterable[str] = (),
        failing_players: Iterable[str] = (),
        missing_histories: Iterable[str] = (),
        fail_club_list: bool = False,
        on_players: Optional[Callable[[str], None]] = None,
    ):
        self.clubs = clubs
        self.players_by_club = players_by_club
        self.histories = histories
        self.failing_clubs = set(failing_clubs)
        self.failing_players = set(failing_players)
        self.missing_histories = set(missing_histories)
        self.fail_club_list = fail_club_list
        self.on_players = on_players
        self.club_list_calls = 0
        self.player_calls: Counter[str] = Counter()
        self.history_calls: Counter[str] = Counter()

    async def __aenter__(self) -> "FakeDataSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def list_clubs(self, prefix: str = "") -> list[Club]:
        self.club_list_calls += 1
        if self.fail_club_list:
            raise ExternalAPIError("club listing unavailable")
        return [club for club in self.clubs if club.id.startswith(prefix)]

    async def list_club_players(self, club_id: str) -> list[Player]:
        self.player_calls[club_id] += 1
        await asyncio.sleep(0)
        if self.on_players is not None:
            self.on_players(club_id)
        if club_id in self.failing_clubs:
            raise ExternalAPIError(f"players of {club_id} unavailable")
        return list(self.players_by_club.get(club_id, []))

    async def fetch_rating_history(self, player_id: str) -> RatingHistory:
        self.history_calls[player_id] += 1
        await asyncio.sleep(0)
        if player_id in self.failing_players:
            raise ExternalAPIError(f"history of {player_id} unavailable")
        if player_id in self.missing_histories:
            raise NotFoundError(f"Not found: /api/v1/players/{player_id}/rating-history")
        return self.histories.get(player_id, RatingHistory(player_id=player_id))

    @property
    def total_history_calls(self) -> int:
        return sum(self.history_calls.values())


def build_population(num_clubs: int = 12, players_per_club: int = 8):
    """
    Deterministic population.

    Birth years cycle over 2010-2012 and genders alternate, so the players
    split evenly into six age/gender groups.
    """
    clubs = [Club(id=f"C{n:04d}", name=f"Schachklub {n}") for n in range(1, num_clubs + 1)]
    players_by_club: dict[str, list[Player]] = {}
    histories: dict[str, RatingHistory] = {}

    for club_index, club in enumerate(clubs):
        players = []
        for position in range(players_per_club):
            k = club_index * players_per_club + position
            dwz = 1000 + (k * 37) % 900
            player = Player(
                id=f"{club.id}-{position + 1:03d}",
                name=f"Spieler{k}",
                firstname=f"Vorname{k}",
                club=club.name,
                club_id=club.id,
                birth_year=2010 + k % 3,
                gender="m" if k % 2 == 0 else "w",
                current_dwz=dwz,
            )
            players.append(player)
            histories[player.id] = RatingHistory(
                player_id=player.id,
                points=[
                    RatingPoint(date=datetime(2023, 12, 1, tzinfo=timezone.utc), dwz=dwz - 50, games=7, points=3.5),
                    RatingPoint(date=datetime(2024, 11, 20, tzinfo=timezone.utc), dwz=dwz - 20, games=5, points=3.0),
                    RatingPoint(date=datetime(2025, 3, 1, tzinfo=timezone.utc), dwz=dwz, games=4, points=2.5),
                ],
            )
        players_by_club[club.id] = players

    return clubs, players_by_club, histories


@pytest.fixture
def population():
    return build_population()


@pytest.fixture
def make_source(population):
    """Factory for fresh fake sources over the shared population."""
    clubs, players_by_club, histories = population

    def factory(**kwargs) -> FakeDataSource:
        return FakeDataSource(clubs, players_by_club, histories, **kwargs)

    return factory


@pytest.fixture
def checkpoint_path(tmp_path):
    return tmp_path / "kader-planung-checkpoint-all.json"


@pytest.fixture
def store(checkpoint_path):
    return CheckpointStore(checkpoint_path)


@pytest.fixture
def run_config():
    return RunConfig(club_prefix="", output_format="csv", concurrency=4)


@pytest.fixture
def processor_config():
    return ProcessorConfig(
        club_prefix="",
        concurrency=4,
        min_sample_size=10,
        checkpoint_interval=10,
        reference_date=REFERENCE_DATE,
    )
