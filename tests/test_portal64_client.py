"""
Tests for the Portal64 HTTP client against an in-process mock transport.
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from kader_planung.core.http import ExternalAPIError, NotFoundError
from kader_planung.providers import Portal64Client
from kader_planung.providers.portal64 import estimate_tournament_date


def paged(rows, total, limit, offset):
    return {
        "success": True,
        "data": {
            "data": rows,
            "meta": {"total": total, "limit": limit, "offset": offset, "count": len(rows)},
        },
    }


def make_client(handler, **kwargs) -> Portal64Client:
    kwargs.setdefault("requests_per_minute", 60000)
    return Portal64Client(
        base_url="http://portal64.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture
def no_sleep(monkeypatch):
    async def instant(_seconds):
        return None

    monkeypatch.setattr("kader_planung.core.http.asyncio.sleep", instant)


class TestClubs:
    async def test_list_clubs_paginates_and_filters(self):
        clubs = [
            {"id": "C0301", "name": "SK Alpha"},
            {"id": "C0302", "name": "SK Beta"},
            {"id": "B0303", "name": "C03 Freunde"},  # name match only
        ]
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            limit = int(request.url.params["limit"])
            offset = int(request.url.params["offset"])
            return httpx.Response(200, json=paged(clubs[offset:offset + limit], len(clubs), limit, offset))

        async with make_client(handler, page_size=2) as client:
            result = await client.list_clubs("C03")

        assert [club.id for club in result] == ["C0301", "C0302"]
        assert [r.url.params["offset"] for r in requests] == ["0", "2"]
        assert requests[0].url.path == "/api/v1/clubs"
        assert requests[0].url.params["query"] == "C03"
        assert requests[0].url.params["sort_by"] == "name"

    async def test_list_clubs_stops_on_short_page(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=paged([{"id": "C0101"}], 1, 500, 0))

        async with make_client(handler) as client:
            result = await client.list_clubs()

        assert len(result) == 1
        assert len(calls) == 1
        assert "query" not in calls[0].url.params


class TestPlayers:
    async def test_list_club_players(self):
        players = [
            {"id": f"C0327-{i:03d}", "name": f"Name{i}", "birth_year": 2010, "gender": 1, "current_dwz": 1400 + i}
            for i in range(3)
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/clubs/C0327/players"
            limit = int(request.url.params["limit"])
            offset = int(request.url.params["offset"])
            return httpx.Response(200, json=paged(players[offset:offset + limit], 3, limit, offset))

        async with make_client(handler, page_size=2) as client:
            result = await client.list_club_players("C0327")

        assert [p.id for p in result] == ["C0327-000", "C0327-001", "C0327-002"]
        assert result[0].gender == "1"
        assert result[2].current_dwz == 1402


class TestRatingHistory:
    async def test_converts_tournament_rows(self):
        rows = [
            {
                "id": 1,
                "tournament_id": "B914-550-S4S",
                "tournament_name": "Stadtmeisterschaft",
                "tournament_date": "2024-11-20T00:00:00Z",
                "games": 5,
                "points": 3.0,
                "dwz_old": 1480,
                "dwz_new": 1502,
            },
            {"id": 2, "tournament_id": "C1312-612-DSV", "tournament_date": None, "games": 7, "dwz_new": 1400},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/players/C0327-297/rating-history"
            return httpx.Response(200, json={"success": True, "data": rows})

        async with make_client(handler) as client:
            history = await client.fetch_rating_history("C0327-297")

        assert history.player_id == "C0327-297"
        assert len(history.points) == 2
        point = history.points[0]
        assert point.dwz == 1502
        assert point.games == 5
        assert point.tournament == "Stadtmeisterschaft"
        assert point.date.tzinfo is not None

        undated = history.points[1]
        assert undated.date == datetime(2013, 3, 19, tzinfo=timezone.utc)
        assert undated.games == 7
        assert undated.tournament == "C1312-612-DSV"

    async def test_not_found(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False, "error": "not found"})

        async with make_client(handler) as client:
            with pytest.raises(NotFoundError):
                await client.fetch_rating_history("C0327-297")

    async def test_unsuccessful_response(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False})

        async with make_client(handler) as client:
            with pytest.raises(ExternalAPIError):
                await client.fetch_rating_history("C0327-297")


class TestRetries:
    async def test_server_error_is_retried(self, no_sleep):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={"status": "ok"})

        async with make_client(handler, max_retries=3) as client:
            status = await client.check_health()

        assert status == {"status": "ok"}
        assert len(attempts) == 3

    async def test_client_error_is_not_retried(self, no_sleep):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(400, text="bad request")

        async with make_client(handler, max_retries=3) as client:
            with pytest.raises(ExternalAPIError) as exc_info:
                await client.check_health()

        assert exc_info.value.status_code == 400
        assert len(attempts) == 1

    async def test_transport_error_exhausts_retries(self, no_sleep):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(ExternalAPIError):
                await client.list_club_players("C0327")


class TestTournamentDateEstimate:
    NOW = datetime(2025, 6, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "tournament_id, expected",
        [
            # C + year 13 + ISO week 12
            ("C1312-612-DSV", datetime(2013, 3, 19, tzinfo=timezone.utc)),
            # B + year 05 + ISO week 01; 1 Jan 2005 belongs to week 53 of 2004
            ("B0501-100-ABC", datetime(2004, 1, 3, tzinfo=timezone.utc)),
            # week does not parse: mid-year of 1991
            ("B914-550-P4P", datetime(1991, 6, 15, tzinfo=timezone.utc)),
            # week out of range
            ("C2060-001-XYZ", datetime(2020, 6, 15, tzinfo=timezone.utc)),
            # too short for a week
            ("B13X", datetime(2013, 6, 15, tzinfo=timezone.utc)),
        ],
    )
    def test_parses_year_and_week(self, tournament_id, expected):
        assert estimate_tournament_date(tournament_id, self.NOW) == expected

    @pytest.mark.parametrize("tournament_id", ["T117893", "X1312-612", "BXY1-000", "C13", ""])
    def test_falls_back_to_one_year_ago(self, tournament_id):
        assert estimate_tournament_date(tournament_id, self.NOW) == datetime(2024, 6, 15, tzinfo=timezone.utc)

    def test_fallback_from_leap_day_rolls_over(self):
        leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert estimate_tournament_date("T117893", leap) == datetime(2023, 3, 1, tzinfo=timezone.utc)
