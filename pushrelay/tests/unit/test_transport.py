from __future__ import annotations

import json

import httpx
import pytest

from pushrelay.core.errors import PushSendError
from pushrelay.domain.types import NotificationPayload
from pushrelay.services.transport import deliver_push


_PAYLOAD = NotificationPayload(title="Task assigned", body="You have a new task", data={"task_id": "t-7"})


@pytest.mark.asyncio
async def test_noop_gateway_skips_network() -> None:
    await deliver_push("token-1", _PAYLOAD)


@pytest.mark.asyncio
async def test_posts_message_to_gateway() -> None:
    seen: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"name": "messages/1"})

    await deliver_push(
        "token-1",
        _PAYLOAD,
        gateway_url="https://push.example.test/send",
        transport=httpx.MockTransport(_handler),
    )
    assert seen == [
        {
            "token": "token-1",
            "notification": {"title": "Task assigned", "body": "You have a new task"},
            "data": {"task_id": "t-7"},
        }
    ]


@pytest.mark.asyncio
async def test_gateway_error_code_is_surfaced() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"code": "UNREGISTERED", "message": "gone"}})

    with pytest.raises(PushSendError) as excinfo:
        await deliver_push(
            "token-1",
            _PAYLOAD,
            gateway_url="https://push.example.test/send",
            transport=httpx.MockTransport(_handler),
        )
    assert excinfo.value.code == "UNREGISTERED"


@pytest.mark.asyncio
async def test_http_status_fallback_code() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(PushSendError) as excinfo:
        await deliver_push(
            "token-1",
            _PAYLOAD,
            gateway_url="https://push.example.test/send",
            transport=httpx.MockTransport(_handler),
        )
    assert excinfo.value.code == "http_503"


@pytest.mark.asyncio
async def test_network_and_timeout_errors_are_classified() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def _slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(PushSendError) as refused:
        await deliver_push("t", _PAYLOAD, gateway_url="https://push.example.test", transport=httpx.MockTransport(_refuse))
    assert refused.value.code == "NETWORK_ERROR"

    with pytest.raises(PushSendError) as slow:
        await deliver_push("t", _PAYLOAD, gateway_url="https://push.example.test", transport=httpx.MockTransport(_slow))
    assert slow.value.code == "TIMEOUT"
