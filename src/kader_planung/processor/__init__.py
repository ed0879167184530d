"""
Processing pipeline: historical analysis, record assembly and the
concurrent club/player orchestrator.
"""

from .history import analyze_history
from .orchestrator import (
    ClubProcessor,
    ProcessingError,
    ProcessingResult,
    ProcessorConfig,
)
from .records import (
    apply_percentiles,
    apply_rankings,
    calculate_club_id_prefixes,
    calculate_list_ranking,
    create_record,
    format_decimal,
)

__all__ = [
    "ClubProcessor",
    "ProcessingError",
    "ProcessingResult",
    "ProcessorConfig",
    "analyze_history",
    "apply_percentiles",
    "apply_rankings",
    "calculate_club_id_prefixes",
    "calculate_list_ranking",
    "create_record",
    "format_decimal",
]
