from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pushrelay.domain.types import AnalyticsSnapshot


@dataclass(frozen=True)
class ThresholdPolicy:
    # Exclusive bounds; the critical branch is checked first for each metric.
    delivery_rate_warning: float = 95.0
    delivery_rate_critical: float = 85.0
    click_rate_warning: float = 5.0
    click_rate_critical: float = 2.0
    response_time_warning_ms: int = 5000
    response_time_critical_ms: int = 10000
    failure_rate_warning: float = 10.0
    failure_rate_critical: float = 20.0


DEFAULT_THRESHOLD_POLICY = ThresholdPolicy()


@dataclass(frozen=True)
class ThresholdReport:
    warnings: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.warnings and not self.critical_issues

    def to_dict(self) -> dict[str, Any]:
        return {"warnings": list(self.warnings), "critical_issues": list(self.critical_issues)}


def failure_rate(snapshot: AnalyticsSnapshot) -> float:
    denominator = snapshot.total_sent + snapshot.total_failed
    if denominator <= 0:
        return 0.0
    return snapshot.total_failed / denominator * 100


def check_performance_thresholds(
    snapshot: AnalyticsSnapshot,
    policy: ThresholdPolicy | None = None,
) -> ThresholdReport:
    """Classify a snapshot into warning and critical health signals.

    Each rule contributes at most one message. Rate rules only apply when the window has
    something to measure (``total_sent`` for delivery, ``total_delivered`` for clicks).
    """
    policy = policy or DEFAULT_THRESHOLD_POLICY
    warnings: list[str] = []
    critical: list[str] = []

    if snapshot.total_sent > 0:
        rate = snapshot.delivery_rate
        if rate < policy.delivery_rate_critical:
            critical.append(f"Delivery rate is critically low: {rate:.1f}%")
        elif rate < policy.delivery_rate_warning:
            warnings.append(f"Delivery rate is low: {rate:.1f}%")

    if snapshot.total_delivered > 0:
        rate = snapshot.click_rate
        if rate < policy.click_rate_critical:
            critical.append(f"Click rate is critically low: {rate:.1f}%")
        elif rate < policy.click_rate_warning:
            warnings.append(f"Click rate is low: {rate:.1f}%")

    response_ms = snapshot.average_response_time
    if response_ms > policy.response_time_critical_ms:
        critical.append(f"Average response time is critically high: {response_ms}ms")
    elif response_ms > policy.response_time_warning_ms:
        warnings.append(f"Average response time is high: {response_ms}ms")

    failures = failure_rate(snapshot)
    if failures > policy.failure_rate_critical:
        critical.append(f"Failure rate is critically high: {failures:.1f}%")
    elif failures > policy.failure_rate_warning:
        warnings.append(f"Failure rate is high: {failures:.1f}%")

    return ThresholdReport(warnings=warnings, critical_issues=critical)
