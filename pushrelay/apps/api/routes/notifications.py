from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from pushrelay.apps.api.deps import get_reliability_engine, get_send_fn
from pushrelay.apps.api.openapi import DEFAULT_ERROR_RESPONSES, SWEEP_CONFLICT_RESPONSE
from pushrelay.apps.api.response import SuccessEnvelope, success_response
from pushrelay.core.errors import SweepInProgressError
from pushrelay.domain.types import DeviceInfo, Metric, MetricStatus, NotificationType
from pushrelay.services.analytics.thresholds import check_performance_thresholds
from pushrelay.services.engine import ReliabilityEngine
from pushrelay.services.retry.processor import SendFn
from pushrelay.services.retry.queue import enqueue_retryable_notification


router = APIRouter(prefix="/notifications", tags=["notifications"], responses=DEFAULT_ERROR_RESPONSES)


class NotificationPayloadRequest(BaseModel):
    title: str
    body: str
    data: dict[str, str] = Field(default_factory=dict)


class RetryEnqueueRequest(BaseModel):
    user_id: str = Field(min_length=1)
    notification_id: str = Field(min_length=1)
    type: str
    payload: NotificationPayloadRequest
    destination_token: str = Field(min_length=1)
    max_attempts: int | None = Field(default=None, ge=1)


class RetryEnqueueResponse(BaseModel):
    id: str


class SweepResponse(BaseModel):
    processed: int
    successful: int
    failed: int


class CleanupRequest(BaseModel):
    days_old: int = Field(default=7, ge=0)


class CleanupResponse(BaseModel):
    deleted: int


class RetryStatsResponse(BaseModel):
    pending: int
    retrying: int
    failed: int
    success: int


class DeviceInfoRequest(BaseModel):
    platform: str
    user_agent: str


class MetricRequest(BaseModel):
    user_id: str = Field(min_length=1)
    notification_id: str = Field(min_length=1)
    type: NotificationType
    status: MetricStatus
    response_time_ms: int | None = Field(default=None, ge=0)
    error_code: str | None = None
    error_message: str | None = None
    destination_token: str | None = None
    device_info: DeviceInfoRequest | None = None


class MetricAcceptedResponse(BaseModel):
    accepted: bool


class AnalyticsResponse(BaseModel):
    total_sent: int
    total_delivered: int
    total_clicked: int
    total_failed: int
    delivery_rate: float
    click_rate: float
    average_response_time: int
    error_breakdown: dict[str, int]
    type_breakdown: dict[str, int]


class AnalyticsHealthResponse(BaseModel):
    analytics: AnalyticsResponse
    warnings: list[str]
    critical_issues: list[str]


@router.post(
    "/retries",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[RetryEnqueueResponse],
)
async def enqueue_retry(
    request: Request,
    body: RetryEnqueueRequest,
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    # Store failures propagate here so the producer learns the notification is not retry-capable.
    record_id = await enqueue_retryable_notification(
        engine.retry_store,
        user_id=body.user_id,
        notification_id=body.notification_id,
        type=body.type,
        payload=body.payload.model_dump(),
        destination_token=body.destination_token,
        max_attempts=body.max_attempts,
        config=engine.config,
        clock=engine.clock,
    )
    return success_response(request=request, data={"id": record_id})


@router.post(
    "/retries/sweep",
    response_model=SuccessEnvelope[SweepResponse],
    responses=SWEEP_CONFLICT_RESPONSE,
)
async def sweep_retries(
    request: Request,
    engine: ReliabilityEngine = Depends(get_reliability_engine),
    send_fn: SendFn = Depends(get_send_fn),
) -> dict[str, Any]:
    result = await engine.sweeper.run_exclusive(send_fn)
    if result is None:
        raise SweepInProgressError("A retry sweep is already running")
    return success_response(request=request, data=result.to_dict())


@router.post("/retries/cleanup", response_model=SuccessEnvelope[CleanupResponse])
async def cleanup_retries(
    request: Request,
    body: CleanupRequest | None = None,
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    days_old = body.days_old if body is not None else CleanupRequest().days_old
    deleted = await engine.sweeper.cleanup_old_retries(days_old)
    return success_response(request=request, data={"deleted": deleted})


@router.get("/retries/users/{user_id}/stats", response_model=SuccessEnvelope[RetryStatsResponse])
async def user_retry_stats(
    request: Request,
    user_id: str,
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    stats = await engine.sweeper.get_user_retry_stats(user_id)
    return success_response(request=request, data=stats.to_dict())


@router.post(
    "/metrics",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessEnvelope[MetricAcceptedResponse],
)
async def record_metric(
    request: Request,
    body: MetricRequest,
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    # Accepted even when the write fails; metrics are best-effort telemetry.
    device_info = (
        DeviceInfo(platform=body.device_info.platform, user_agent=body.device_info.user_agent)
        if body.device_info is not None
        else None
    )
    await engine.recorder.record_metric(
        Metric(
            user_id=body.user_id,
            notification_id=body.notification_id,
            type=body.type,
            status=body.status,
            response_time_ms=body.response_time_ms,
            error_code=body.error_code,
            error_message=body.error_message,
            destination_token=body.destination_token,
            device_info=device_info,
        )
    )
    return success_response(request=request, data={"accepted": True})


@router.get("/analytics/users/{user_id}", response_model=SuccessEnvelope[AnalyticsResponse])
async def user_analytics(
    request: Request,
    user_id: str,
    days: int | None = Query(default=None, ge=1, le=365),
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    snapshot = await engine.analytics.get_user_analytics(user_id, days)
    return success_response(request=request, data=snapshot.to_dict())


@router.get("/analytics/system", response_model=SuccessEnvelope[AnalyticsResponse])
async def system_analytics(
    request: Request,
    days: int | None = Query(default=None, ge=1, le=365),
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    snapshot = await engine.analytics.get_system_analytics(days)
    return success_response(request=request, data=snapshot.to_dict())


@router.get("/analytics/health", response_model=SuccessEnvelope[AnalyticsHealthResponse])
async def analytics_health(
    request: Request,
    days: int | None = Query(default=None, ge=1, le=365),
    user_id: str | None = Query(default=None, min_length=1),
    engine: ReliabilityEngine = Depends(get_reliability_engine),
) -> dict[str, Any]:
    # Scope to one user when given, otherwise evaluate the whole system window.
    if user_id:
        snapshot = await engine.analytics.get_user_analytics(user_id, days)
    else:
        snapshot = await engine.analytics.get_system_analytics(days)
    report = check_performance_thresholds(snapshot)
    return success_response(request=request, data={"analytics": snapshot.to_dict(), **report.to_dict()})
