from pushrelay.services.analytics.aggregation import AnalyticsService, compute_analytics
from pushrelay.services.analytics.thresholds import (
    DEFAULT_THRESHOLD_POLICY,
    ThresholdPolicy,
    ThresholdReport,
    check_performance_thresholds,
    failure_rate,
)

__all__ = [
    "AnalyticsService",
    "compute_analytics",
    "DEFAULT_THRESHOLD_POLICY",
    "ThresholdPolicy",
    "ThresholdReport",
    "check_performance_thresholds",
    "failure_rate",
]
