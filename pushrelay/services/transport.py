from __future__ import annotations

import logging
from typing import Any

import httpx

from pushrelay.core.config import get_settings
from pushrelay.core.errors import PushSendError
from pushrelay.domain.types import NotificationPayload


logger = logging.getLogger(__name__)


def _response_error_code(response: httpx.Response) -> str:
    # Prefer the gateway's own error code so failure breakdowns stay meaningful.
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            if isinstance(code, str) and code.strip():
                return code.strip()
        code = body.get("code")
        if isinstance(code, str) and code.strip():
            return code.strip()
    return f"http_{int(response.status_code)}"


def build_push_body(destination_token: str, payload: NotificationPayload) -> dict[str, Any]:
    return {
        "token": destination_token,
        "notification": {"title": payload.title, "body": payload.body},
        "data": dict(payload.data),
    }


async def deliver_push(
    destination_token: str,
    payload: NotificationPayload,
    *,
    gateway_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Send one push message through the configured gateway.

    Raises ``PushSendError`` on any failure so the retry processor can classify it.
    """
    settings = get_settings()
    destination = gateway_url or settings.push_gateway_url
    # noop gateways keep local and dev runs free of network I/O.
    if destination.startswith("noop://"):
        return
    timeout_s = max(0.2, settings.push_send_timeout_ms / 1000.0)
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await client.post(destination, json=build_push_body(destination_token, payload))
    except httpx.TimeoutException as exc:
        raise PushSendError("TIMEOUT", f"Push gateway timed out after {timeout_s:.1f}s") from exc
    except httpx.HTTPError as exc:
        raise PushSendError("NETWORK_ERROR", str(exc) or "Push gateway unreachable") from exc
    if response.status_code >= 400:
        code = _response_error_code(response)
        logger.debug("push_gateway_rejected status_code=%s code=%s", response.status_code, code)
        raise PushSendError(code, f"Push gateway rejected message ({response.status_code})")
