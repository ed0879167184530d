"""
Base data source protocol.

Defines the interface the processing engine uses to read the
club → player → rating-history hierarchy, ensuring the engine is
independent of the concrete HTTP API (and testable with in-memory fakes).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..core.models import Club, Player, RatingHistory


class ClubDataSource(ABC):
    """
    Abstract interface for the remote player database.

    The data source is responsible for:
    1. Making API calls to the external service
    2. Flattening paginated listings into plain lists
    3. Retrying transient failures (per request)

    The data source is NOT responsible for:
    - Checkpointing or skipping already processed entities
    - Historical analysis or percentile calculation
    """

    @abstractmethod
    async def list_clubs(self, prefix: str = "") -> list[Club]:
        """
        Fetch every club whose id starts with ``prefix``.

        Args:
            prefix: Club id prefix filter ("" for all clubs)

        Returns:
            All matching clubs, pagination already resolved
        """
        ...

    @abstractmethod
    async def list_club_players(self, club_id: str) -> list[Player]:
        """
        Fetch every player of a club (active and inactive).

        Args:
            club_id: Club ID (e.g. "C0327")

        Returns:
            All players of the club, pagination already resolved
        """
        ...

    @abstractmethod
    async def fetch_rating_history(self, player_id: str) -> RatingHistory:
        """
        Fetch a player's rating history.

        Args:
            player_id: Player ID (e.g. "C0327-297")

        Returns:
            RatingHistory, possibly with no points

        Raises:
            NotFoundError: If the player has no rating history
        """
        ...
