"""
Kader-Planung

Squad-planning report for chess clubs: walks every club and its players on
the Portal64 API, analyzes each player's rating history over the last
12 months and places each player within their age/gender cohort
(somatogram percentile).

Key Features:
- Bounded-concurrency processing of the club → player hierarchy
- Crash-safe, resumable checkpoints with per-player memoization
- Age/gender percentile tables with a minimum sample size gate
- CSV, JSON and Excel reports

Usage:
    from kader_planung import (
        CheckpointStore, ClubProcessor, Portal64Client, ProcessorConfig, RunConfig,
    )

    async with Portal64Client() as client:
        store = CheckpointStore("kader-planung-checkpoint-all.json")
        processor = ClubProcessor(client, store, ProcessorConfig(concurrency=8))
        result = await processor.run(store.create(RunConfig()))
"""

__version__ = "1.0.0"

from .core import (
    DATA_NOT_AVAILABLE,
    KaderPlanungRecord,
    Settings,
    get_settings,
)
from .export import Exporter
from .processor import (
    ClubProcessor,
    ProcessingError,
    ProcessingResult,
    ProcessorConfig,
)
from .providers import ClubDataSource, Portal64Client
from .resume import CheckpointStore, RunConfig
from .statistics import StatisticalAnalyzer

__all__ = [
    # Core
    "DATA_NOT_AVAILABLE",
    "KaderPlanungRecord",
    "Settings",
    "get_settings",
    # Processing
    "ClubProcessor",
    "ProcessingError",
    "ProcessingResult",
    "ProcessorConfig",
    # Providers
    "ClubDataSource",
    "Portal64Client",
    # Resume
    "CheckpointStore",
    "RunConfig",
    # Statistics
    "StatisticalAnalyzer",
    # Export
    "Exporter",
]
