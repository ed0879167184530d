"""
Portal64 API client.

Provides access to clubs, club rosters and player rating histories
via the Portal64 REST API (``/api/v1``).
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import ValidationError

from ..core.http import BaseApiClient, ExternalAPIError
from ..core.models import Club, Player, RatingHistory, RatingPoint, TournamentResult
from .base import ClubDataSource

_INTEGER = re.compile(r"[+-]?[0-9]+")


def _parse_int(text: str) -> Optional[int]:
    return int(text) if _INTEGER.fullmatch(text) else None


def _one_year_before(moment: datetime) -> datetime:
    # 29 Feb rolls over to 1 Mar
    try:
        return moment.replace(year=moment.year - 1)
    except ValueError:
        return moment.replace(year=moment.year - 1, month=3, day=1)


def estimate_tournament_date(tournament_id: str, now: Optional[datetime] = None) -> datetime:
    """
    Estimate a tournament date from its id.

    Ids like ``C1312-612-DSV`` start with B or C, followed by a two-digit
    year (00-30 is 2000-2030, 31-99 is 1931-1999) and an ISO week number.

    - year and week parse: January 1st of that year shifted by the
      difference between the week and January 1st's own ISO week
    - only the year parses: 15 June of that year
    - anything else (``T117893``, short or unknown ids): one year before now
    """
    now = now or datetime.now(timezone.utc)
    fallback = _one_year_before(now)

    if len(tournament_id) < 4 or tournament_id[0] not in ("B", "C"):
        return fallback

    year = _parse_int(tournament_id[1:3])
    if year is None:
        return fallback
    full_year = 1900 + year if year >= 31 else 2000 + year

    if len(tournament_id) >= 6:
        week = _parse_int(tournament_id[3:5])
        if week is not None and 1 <= week <= 53:
            jan1 = datetime(full_year, 1, 1, tzinfo=timezone.utc)
            return jan1 + timedelta(weeks=week - jan1.isocalendar()[1])

    return datetime(full_year, 6, 15, tzinfo=timezone.utc)


class Portal64Client(BaseApiClient, ClubDataSource):
    """Portal64 API client."""

    BASE_URL = "http://localhost:8080"

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 30.0,
        requests_per_minute: int = 600,
        max_retries: int = 3,
        page_size: int = 500,
        logger: logging.Logger | None = None,
        **kwargs: Any,
    ):
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            requests_per_minute=requests_per_minute,
            max_retries=max_retries,
            **kwargs,
        )
        self.page_size = page_size
        self.logger = logger or logging.getLogger(__name__)

    # =========================================================================
    # Clubs
    # =========================================================================

    async def search_clubs(
        self,
        prefix: str = "",
        limit: int = 500,
        offset: int = 0,
    ) -> tuple[list[Club], int]:
        """
        Search one page of clubs.

        Returns:
            Tuple of (clubs on this page, total number of matches)
        """
        params: dict[str, Any] = {
            "limit": limit,
            "offset": offset,
            "sort_by": "name",
            "sort_order": "asc",
        }
        if prefix:
            params["query"] = prefix

        response = await self._get("/api/v1/clubs", params)
        return self._parse_page(response, Club, "clubs")

    async def list_clubs(self, prefix: str = "") -> list[Club]:
        """Iterate through all club pages and filter by id prefix."""
        clubs: list[Club] = []
        offset = 0

        self.logger.debug("Starting to fetch all clubs...")
        while True:
            page, total = await self.search_clubs(prefix, self.page_size, offset)
            clubs.extend(page)
            self.logger.debug(
                "Fetched %d clubs (total so far: %d)", len(page), len(clubs)
            )
            if len(page) < self.page_size or len(clubs) >= total:
                break
            offset += self.page_size

        # The search endpoint matches names too; keep only id prefix matches
        if prefix:
            clubs = [club for club in clubs if club.id.startswith(prefix)]

        self.logger.info("Found %d clubs matching prefix '%s'", len(clubs), prefix or "all")
        return clubs

    # =========================================================================
    # Players
    # =========================================================================

    async def get_club_players(
        self,
        club_id: str,
        limit: int = 500,
        offset: int = 0,
        active_only: bool = False,
    ) -> tuple[list[Player], int]:
        """Get one page of a club's players."""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if active_only:
            params["active"] = "true"

        response = await self._get(f"/api/v1/clubs/{club_id}/players", params)
        return self._parse_page(response, Player, f"players of {club_id}")

    async def list_club_players(self, club_id: str) -> list[Player]:
        """Iterate through all player pages of a club."""
        players: list[Player] = []
        offset = 0

        while True:
            page, total = await self.get_club_players(club_id, self.page_size, offset)
            players.extend(page)
            if len(page) < self.page_size or len(players) >= total:
                break
            offset += self.page_size

        self.logger.debug("Found %d players for club %s", len(players), club_id)
        return players

    # =========================================================================
    # Rating History
    # =========================================================================

    async def fetch_rating_history(self, player_id: str) -> RatingHistory:
        """
        Get the complete rating history for a player.

        Each tournament row becomes one RatingPoint carrying the rating
        after the tournament. Rows without a tournament date get one
        estimated from the tournament id (see estimate_tournament_date).
        """
        response = await self._get(f"/api/v1/players/{player_id}/rating-history")

        if not isinstance(response, dict) or not response.get("success"):
            raise ExternalAPIError(
                f"API returned unsuccessful response for player {player_id}"
            )

        try:
            results = [TournamentResult.model_validate(row) for row in response.get("data") or []]
        except ValidationError as e:
            raise ExternalAPIError(f"Malformed rating history for {player_id}: {e}") from e

        points = []
        for result in results:
            date = result.tournament_date
            if date is None:
                date = estimate_tournament_date(result.tournament_id)
                self.logger.debug(
                    "Tournament %s has no date, estimated %s for player %s",
                    result.tournament_id,
                    date.date(),
                    player_id,
                )
            points.append(
                RatingPoint(
                    date=date,
                    dwz=result.dwz_new,
                    games=result.games,
                    points=result.points,
                    tournament=result.tournament_name or result.tournament_id,
                )
            )

        self.logger.debug(
            "Converted %d tournament results to %d rating points for player %s",
            len(results),
            len(points),
            player_id,
        )
        return RatingHistory(player_id=player_id, points=points)

    # =========================================================================
    # Health
    # =========================================================================

    async def check_health(self) -> dict[str, Any]:
        """Check that the API is reachable."""
        return await self._get("/health")

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_page(response: Any, model: type, what: str) -> tuple[list, int]:
        """
        Unwrap ``{"success": ..., "data": {"data": [...], "meta": {...}}}``.
        """
        if not isinstance(response, dict):
            raise ExternalAPIError(f"Unexpected response shape for {what}")

        payload = response.get("data") or {}
        rows = payload.get("data") or []
        total = (payload.get("meta") or {}).get("total", len(rows))

        try:
            items = [model.model_validate(row) for row in rows]
        except ValidationError as e:
            raise ExternalAPIError(f"Malformed {what} response: {e}") from e
        return items, int(total)
