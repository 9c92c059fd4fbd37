from __future__ import annotations

import json
import logging
import time
from uuid import uuid4

from parley.app.observability.contracts import ProviderCallTrace

LOGGER = logging.getLogger(__name__)
MAX_TRACE_LOG_SIZE = 500


def create_provider_trace(
    *,
    provider: str,
    chat_id: int,
    user_id: int,
    started_at: float,
    status: str = "ok",
    status_code: int | None = None,
    error_message: str | None = None,
) -> ProviderCallTrace:
    elapsed_ms = int((time.perf_counter() - started_at) * 1000)
    return ProviderCallTrace(
        trace_id=f"trace-{uuid4().hex[:10]}",
        provider=provider,
        chat_id=chat_id,
        user_id=user_id,
        status=status,
        latency_ms=max(elapsed_ms, 0),
        status_code=status_code,
        error_message=error_message,
    )


def record_provider_trace(
    trace_log: list[ProviderCallTrace],
    trace: ProviderCallTrace,
    logger: logging.Logger | None = None,
) -> None:
    active_logger = logger or LOGGER
    trace_log.append(trace)
    if len(trace_log) > MAX_TRACE_LOG_SIZE:
        del trace_log[: len(trace_log) - MAX_TRACE_LOG_SIZE]
    payload = {
        "trace_id": trace.trace_id,
        "provider": trace.provider,
        "chat_id": trace.chat_id,
        "status": trace.status,
        "status_code": trace.status_code,
        "latency_ms": trace.latency_ms,
    }
    if trace.status == "ok":
        active_logger.info("provider_call %s", json.dumps(payload, sort_keys=True))
    else:
        active_logger.warning(
            "provider_call %s", json.dumps(payload, sort_keys=True)
        )
