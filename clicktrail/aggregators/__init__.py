"""Click statistics aggregation."""

from clicktrail.aggregators.stats_aggregator import (
    DEFAULT_TIME_RANGE,
    TIME_RANGES,
    StatsAggregator,
    TimeWindow,
    percentage,
    resolve_time_window,
)

__all__ = [
    "DEFAULT_TIME_RANGE",
    "TIME_RANGES",
    "StatsAggregator",
    "TimeWindow",
    "percentage",
    "resolve_time_window",
]
