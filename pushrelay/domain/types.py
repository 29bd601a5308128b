from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, get_args

from pushrelay.core.errors import PayloadValidationError


NotificationType = Literal[
    "task_reminder",
    "task_assigned",
    "task_completed",
    "mention",
    "new_comment",
    "system",
]
RetryStatus = Literal["pending", "retrying", "failed", "success"]
MetricStatus = Literal["sent", "delivered", "clicked", "failed"]

NOTIFICATION_TYPES: frozenset[str] = frozenset(get_args(NotificationType))
RETRY_STATUSES: frozenset[str] = frozenset(get_args(RetryStatus))
METRIC_STATUSES: frozenset[str] = frozenset(get_args(MetricStatus))

# Only these statuses are eligible for sweeping once next_retry_at has passed.
DUE_RETRY_STATUSES: tuple[RetryStatus, ...] = ("pending", "retrying")
TERMINAL_RETRY_STATUSES: tuple[RetryStatus, ...] = ("failed", "success")


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "body": self.body, "data": dict(self.data)}


@dataclass(frozen=True)
class LastError:
    code: str
    message: str
    timestamp: datetime


@dataclass(frozen=True)
class DeviceInfo:
    platform: str
    user_agent: str


@dataclass(slots=True)
class RetryRecord:
    """One notification that must eventually be delivered.

    Mutated only by the retry processor; ``id`` is assigned by the retry store.
    """

    user_id: str
    notification_id: str
    type: NotificationType
    payload: NotificationPayload
    destination_token: str
    attempts: int
    max_attempts: int
    next_retry_at: datetime
    created_at: datetime
    status: RetryStatus = "pending"
    last_error: LastError | None = None
    id: str | None = None


@dataclass(frozen=True)
class Metric:
    """Immutable fact about one delivery attempt outcome."""

    user_id: str
    notification_id: str
    type: NotificationType
    status: MetricStatus
    timestamp: datetime | None = None
    response_time_ms: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    destination_token: str | None = None
    device_info: DeviceInfo | None = None
    id: str | None = None


@dataclass(frozen=True)
class AnalyticsSnapshot:
    total_sent: int
    total_delivered: int
    total_clicked: int
    total_failed: int
    delivery_rate: float
    click_rate: float
    average_response_time: int
    error_breakdown: dict[str, int]
    type_breakdown: dict[str, int]

    @classmethod
    def empty(cls) -> AnalyticsSnapshot:
        return cls(
            total_sent=0,
            total_delivered=0,
            total_clicked=0,
            total_failed=0,
            delivery_rate=0.0,
            click_rate=0.0,
            average_response_time=0,
            error_breakdown={},
            type_breakdown={},
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_notification_type(value: Any) -> NotificationType:
    # Reject unknown types at the boundary so stored rows stay within the closed vocabulary.
    if not isinstance(value, str) or value not in NOTIFICATION_TYPES:
        raise PayloadValidationError(f"Unsupported notification type: {value!r}")
    return value  # type: ignore[return-value]


def parse_notification_payload(raw: NotificationPayload | Mapping[str, Any]) -> NotificationPayload:
    if isinstance(raw, NotificationPayload):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raise PayloadValidationError("payload must be an object")
    title = raw.get("title")
    body = raw.get("body")
    if not isinstance(title, str) or not title.strip():
        raise PayloadValidationError("payload.title must be a non-empty string")
    if not isinstance(body, str) or not body.strip():
        raise PayloadValidationError("payload.body must be a non-empty string")
    data = raw.get("data") or {}
    if not isinstance(data, Mapping):
        raise PayloadValidationError("payload.data must be an object")
    normalized: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise PayloadValidationError("payload.data keys and values must be strings")
        normalized[key] = value
    return NotificationPayload(title=title, body=body, data=normalized)
