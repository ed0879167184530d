"""
Remote data sources for clubs, players and rating histories.

Usage:
    from kader_planung.providers import Portal64Client

    async with Portal64Client(base_url="http://localhost:8080") as client:
        clubs = await client.list_clubs("C03")
"""

from .base import ClubDataSource
from .portal64 import Portal64Client

__all__ = [
    "ClubDataSource",
    "Portal64Client",
]
