"""
Core module for Kader-Planung.

This module provides the foundational components:
- Configuration management (config.py)
- Data models (models.py)
- Type definitions and constants (types.py)
- Shared HTTP client infrastructure (http.py)

Usage:
    from kader_planung.core import Settings, get_settings
    from kader_planung.core import Club, Player, KaderPlanungRecord
    from kader_planung.core.http import BaseApiClient, ExternalAPIError
"""

# Configuration
from .config import Settings, get_settings

# Types
from .types import (
    DATA_NOT_AVAILABLE,
    EntityType,
    ItemStatus,
    OutputFormat,
)

# Models
from .models import (
    Club,
    HistoricalAnalysis,
    KaderPlanungRecord,
    Player,
    RatingHistory,
    RatingPoint,
    TournamentResult,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "DATA_NOT_AVAILABLE",
    "EntityType",
    "ItemStatus",
    "OutputFormat",
    # Models
    "Club",
    "HistoricalAnalysis",
    "KaderPlanungRecord",
    "Player",
    "RatingHistory",
    "RatingPoint",
    "TournamentResult",
]
