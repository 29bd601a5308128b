from __future__ import annotations

from functools import lru_cache

from pushrelay.services.engine import ReliabilityEngine, build_engine
from pushrelay.services.retry.processor import SendFn
from pushrelay.services.transport import deliver_push


@lru_cache
def get_reliability_engine() -> ReliabilityEngine:
    # One wired engine per process; tests replace it through dependency overrides.
    return build_engine()


def get_send_fn() -> SendFn:
    return deliver_push
