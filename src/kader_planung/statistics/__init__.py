"""
Percentile statistics engine.

Usage:
    from kader_planung.statistics import StatisticalAnalyzer

    analyzer = StatisticalAnalyzer(min_sample_size=100)
    result = analyzer.compute(players)
"""

from .analyzer import (
    AgeGenderGroup,
    PercentileData,
    SomatogrammData,
    StatisticalAnalyzer,
    StatisticsResult,
    calculate_average,
    calculate_median,
    calculate_percentiles,
    find_percentile,
    normalize_gender,
)

__all__ = [
    "AgeGenderGroup",
    "PercentileData",
    "SomatogrammData",
    "StatisticalAnalyzer",
    "StatisticsResult",
    "calculate_average",
    "calculate_median",
    "calculate_percentiles",
    "find_percentile",
    "normalize_gender",
]
