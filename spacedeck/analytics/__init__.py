"""
Analytics package exports.
"""

from spacedeck.analytics.service import (
    deck_stats,
    heatmap,
    heatmap_buckets,
    heatmap_summary,
    study_stats,
)
from spacedeck.analytics.types import (
    DayAnswers,
    DeckStats,
    HeatmapBucket,
    HeatmapSummary,
    StatsScope,
    StudyStats,
)

__all__ = [
    "deck_stats",
    "heatmap",
    "heatmap_buckets",
    "heatmap_summary",
    "study_stats",
    "DayAnswers",
    "DeckStats",
    "HeatmapBucket",
    "HeatmapSummary",
    "StatsScope",
    "StudyStats",
]
