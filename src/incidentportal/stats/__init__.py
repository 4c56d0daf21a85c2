"""Statistics series and bar breakdowns."""

from incidentportal.stats.breakdown import (
    LabelCount,
    StatisticsClient,
    StatisticsSnapshot,
    bars,
    label_count,
)

__all__ = ["LabelCount", "StatisticsClient", "StatisticsSnapshot", "bars", "label_count"]
