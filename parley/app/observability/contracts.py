from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderCallTrace:
    trace_id: str
    provider: str
    chat_id: int
    user_id: int
    status: str
    latency_ms: int
    status_code: int | None = None
    error_message: str | None = None
