from __future__ import annotations

import pytest

from parley.app.runtime.store import runtime_store


@pytest.fixture(autouse=True)
def reset_runtime_store(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("PARLEY_STATE_PATH", str(tmp_path / "runtime_state.json"))
    runtime_store.users.clear()
    runtime_store.chats.clear()
    runtime_store.messages_by_chat.clear()
    runtime_store.revoked_token_ids.clear()
    runtime_store.provider_trace_log.clear()
    runtime_store.user_sequence = 0
    runtime_store.chat_sequence = 0
    runtime_store.message_sequence = 0
