import json

from parley.app.chat.contracts import Chat, Message, User
from parley.app.runtime import store as store_module
from parley.app.runtime.store import (
    RuntimeStore,
    clear_runtime_state_persistence,
    persist_runtime_state,
    prune_revoked_token_ids,
)

MALFORMED_STATE = {
    "users": [
        {"user_id": 1, "username": "ada", "password_hash": "h.s", "created_at": 1},
        {"user_id": "two", "username": "bob"},
    ],
    "chats": [
        {"chat_id": 1, "user_id": 1, "title": "ok", "created_at": 1, "updated_at": 1},
        {
            "chat_id": 2,
            "user_id": 99,
            "title": "orphan",
            "created_at": 1,
            "updated_at": 1,
        },
    ],
    "messages": [
        {
            "message_id": 5,
            "chat_id": 1,
            "role": "assistant",
            "content": "b",
            "provider": None,
            "created_at": 2,
        },
        {
            "message_id": 4,
            "chat_id": 1,
            "role": "user",
            "content": "a",
            "provider": "gemini",
            "created_at": 1,
        },
        {"message_id": 6, "chat_id": 1, "role": "robot", "content": "x", "created_at": 3},
        {"message_id": 7, "chat_id": 2, "role": "user", "content": "x", "created_at": 3},
    ],
    "sequences": {"user": 0, "chat": 10, "message": "bad"},
}


def _populated_store() -> RuntimeStore:
    store = RuntimeStore()
    user = User(
        user_id=store.next_user_id(),
        username="ada",
        password_hash="h.s",
        created_at=1,
    )
    chat = Chat(
        chat_id=store.next_chat_id(),
        user_id=user.user_id,
        title="First",
        created_at=1,
        updated_at=2,
    )
    message = Message(
        message_id=store.next_message_id(),
        chat_id=chat.chat_id,
        role="user",
        content="hello",
        provider="deepseek",
        created_at=2,
    )
    store.users[user.user_id] = user
    store.chats[chat.chat_id] = chat
    store.messages_by_chat[chat.chat_id] = [message]
    store.revoked_token_ids["revoked-jti"] = 9_999_999_999
    return store


def test_persisted_state_hydrates_into_equal_store() -> None:
    original = _populated_store()
    persist_runtime_state(original)

    restored = store_module._build_store()

    assert restored.users == original.users
    assert restored.chats == original.chats
    assert restored.messages_by_chat == original.messages_by_chat
    assert restored.revoked_token_ids == {"revoked-jti": 9_999_999_999}
    assert restored.next_message_id() == 2


def test_hydration_skips_malformed_and_orphaned_rows(tmp_path, monkeypatch) -> None:
    path = tmp_path / "state.json"
    monkeypatch.setenv("PARLEY_STATE_PATH", str(path))
    path.write_text(json.dumps(MALFORMED_STATE), encoding="utf-8")

    restored = store_module._build_store()

    assert list(restored.users) == [1]
    assert list(restored.chats) == [1]
    assert [m.message_id for m in restored.messages_by_chat[1]] == [4, 5]
    assert restored.user_sequence == 1
    assert restored.chat_sequence == 10
    assert restored.message_sequence == 5


def test_unreadable_state_file_yields_empty_store(tmp_path, monkeypatch) -> None:
    path = tmp_path / "state.json"
    monkeypatch.setenv("PARLEY_STATE_PATH", str(path))
    path.write_text("{not json", encoding="utf-8")

    restored = store_module._build_store()

    assert restored.users == {}
    assert restored.chats == {}


def test_clear_runtime_state_persistence_removes_file() -> None:
    persist_runtime_state(_populated_store())
    path = store_module._runtime_state_path()
    assert path.exists()

    clear_runtime_state_persistence()

    assert not path.exists()


def test_prune_revoked_token_ids_drops_expired_entries() -> None:
    store = RuntimeStore(revoked_token_ids={"old": 100, "edge": 200, "live": 300})

    prune_revoked_token_ids(store, now=200)

    assert store.revoked_token_ids == {"live": 300}


def test_persist_prunes_expired_revocations() -> None:
    store = RuntimeStore(revoked_token_ids={"old": 1, "live": 9_999_999_999})

    persist_runtime_state(store)
    restored = store_module._build_store()

    assert store.revoked_token_ids == {"live": 9_999_999_999}
    assert restored.revoked_token_ids == {"live": 9_999_999_999}
    payload = json.loads(store_module._runtime_state_path().read_text("utf-8"))
    assert payload["revoked_token_ids"] == {"live": 9_999_999_999}
