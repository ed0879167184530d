"""
Core types and constants for Kader-Planung.

This module provides:
- EntityType and ItemStatus enums used by the checkpoint ledger
- OutputFormat enum for report writers
- The DATA_NOT_AVAILABLE marker used in output records
"""

from enum import Enum


class EntityType(str, Enum):
    """Entity types tracked in the processing ledger."""

    club = "club"
    player = "player"


class ItemStatus(str, Enum):
    """Terminal status of a ledger entry."""

    completed = "completed"
    failed = "failed"


class OutputFormat(str, Enum):
    """Supported report formats."""

    csv = "csv"
    json = "json"
    excel = "excel"

    @property
    def extension(self) -> str:
        """File extension for this format."""
        return "xlsx" if self is OutputFormat.excel else self.value


# Explicit "no data" marker. Distinct from "0" so callers can tell
# "no history at all" apart from "zero games played".
DATA_NOT_AVAILABLE = "DATA_NOT_AVAILABLE"

# Gender codes after normalisation
GENDER_CODES = ("m", "w", "d")

# Realistic age range for statistical analysis
MIN_STATISTICS_AGE = 4
MAX_STATISTICS_AGE = 100
