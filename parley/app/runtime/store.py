from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from parley.app.chat.contracts import CHAT_ROLES, Chat, Message, User
from parley.app.observability.contracts import ProviderCallTrace

LOGGER = logging.getLogger(__name__)


@dataclass
class RuntimeStore:
    users: dict[int, User] = field(default_factory=dict)
    chats: dict[int, Chat] = field(default_factory=dict)
    messages_by_chat: dict[int, list[Message]] = field(default_factory=dict)
    user_sequence: int = 0
    chat_sequence: int = 0
    message_sequence: int = 0
    revoked_token_ids: dict[str, int] = field(default_factory=dict)
    provider_trace_log: list[ProviderCallTrace] = field(default_factory=list)

    def next_user_id(self) -> int:
        self.user_sequence += 1
        return self.user_sequence

    def next_chat_id(self) -> int:
        self.chat_sequence += 1
        return self.chat_sequence

    def next_message_id(self) -> int:
        self.message_sequence += 1
        return self.message_sequence


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _runtime_state_path() -> Path:
    configured = os.getenv("PARLEY_STATE_PATH", "").strip()
    if configured:
        path = Path(configured)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    base = _repo_root() / ".tmp"
    base.mkdir(parents=True, exist_ok=True)
    return base / "runtime_state.json"


def _serialize_user(user: User) -> dict[str, object]:
    return {
        "user_id": user.user_id,
        "username": user.username,
        "password_hash": user.password_hash,
        "created_at": user.created_at,
    }


def _deserialize_user(payload: object) -> User | None:
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("user_id")
    username = payload.get("username")
    password_hash = payload.get("password_hash")
    created_at = payload.get("created_at")
    if not all(isinstance(value, str) for value in (username, password_hash)):
        return None
    if not all(isinstance(value, int) for value in (user_id, created_at)):
        return None
    return User(
        user_id=user_id,
        username=username,
        password_hash=password_hash,
        created_at=created_at,
    )


def _serialize_chat(chat: Chat) -> dict[str, object]:
    return {
        "chat_id": chat.chat_id,
        "user_id": chat.user_id,
        "title": chat.title,
        "created_at": chat.created_at,
        "updated_at": chat.updated_at,
    }


def _deserialize_chat(payload: object) -> Chat | None:
    if not isinstance(payload, dict):
        return None
    chat_id = payload.get("chat_id")
    user_id = payload.get("user_id")
    title = payload.get("title")
    created_at = payload.get("created_at")
    updated_at = payload.get("updated_at")
    if not isinstance(title, str):
        return None
    if not all(
        isinstance(value, int)
        for value in (chat_id, user_id, created_at, updated_at)
    ):
        return None
    return Chat(
        chat_id=chat_id,
        user_id=user_id,
        title=title,
        created_at=created_at,
        updated_at=updated_at,
    )


def _serialize_message(message: Message) -> dict[str, object]:
    return {
        "message_id": message.message_id,
        "chat_id": message.chat_id,
        "role": message.role,
        "content": message.content,
        "provider": message.provider,
        "created_at": message.created_at,
    }


def _deserialize_message(payload: object) -> Message | None:
    if not isinstance(payload, dict):
        return None
    message_id = payload.get("message_id")
    chat_id = payload.get("chat_id")
    role = payload.get("role")
    content = payload.get("content")
    provider = payload.get("provider")
    created_at = payload.get("created_at")
    if not all(isinstance(value, str) for value in (role, content)):
        return None
    if role not in CHAT_ROLES:
        return None
    if not all(
        isinstance(value, int) for value in (message_id, chat_id, created_at)
    ):
        return None
    if provider is not None and not isinstance(provider, str):
        return None
    return Message(
        message_id=message_id,
        chat_id=chat_id,
        role=role,
        content=content,
        provider=provider,
        created_at=created_at,
    )


def _load_persisted_runtime_state() -> dict[str, object]:
    path = _runtime_state_path()
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError):
        LOGGER.warning("runtime_state_unreadable path=%s", path)
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def prune_revoked_token_ids(store: RuntimeStore, *, now: int | None = None) -> None:
    cutoff = int(time.time()) if now is None else now
    expired = [
        token_id
        for token_id, expires_at in store.revoked_token_ids.items()
        if expires_at <= cutoff
    ]
    for token_id in expired:
        del store.revoked_token_ids[token_id]


def persist_runtime_state(store: RuntimeStore) -> None:
    prune_revoked_token_ids(store)
    payload = {
        "users": [_serialize_user(user) for user in store.users.values()],
        "chats": [_serialize_chat(chat) for chat in store.chats.values()],
        "messages": [
            _serialize_message(message)
            for messages in store.messages_by_chat.values()
            for message in messages
        ],
        "sequences": {
            "user": store.user_sequence,
            "chat": store.chat_sequence,
            "message": store.message_sequence,
        },
        "revoked_token_ids": dict(sorted(store.revoked_token_ids.items())),
    }
    path = _runtime_state_path()
    temp_path = path.with_suffix(".tmp")
    with temp_path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle)
    temp_path.replace(path)


def clear_runtime_state_persistence() -> None:
    path = _runtime_state_path()
    if path.exists():
        path.unlink()


def _hydrate_users(raw_users: object) -> dict[int, User]:
    if not isinstance(raw_users, list):
        return {}
    users: dict[int, User] = {}
    for row in raw_users:
        user = _deserialize_user(row)
        if not user:
            continue
        users[user.user_id] = user
    return users


def _hydrate_chats(raw_chats: object, users: dict[int, User]) -> dict[int, Chat]:
    if not isinstance(raw_chats, list):
        return {}
    chats: dict[int, Chat] = {}
    for row in raw_chats:
        chat = _deserialize_chat(row)
        if not chat or chat.user_id not in users:
            continue
        chats[chat.chat_id] = chat
    return chats


def _hydrate_messages(
    raw_messages: object,
    chats: dict[int, Chat],
) -> dict[int, list[Message]]:
    if not isinstance(raw_messages, list):
        return {}
    messages_by_chat: dict[int, list[Message]] = {}
    for row in raw_messages:
        message = _deserialize_message(row)
        if not message or message.chat_id not in chats:
            continue
        messages_by_chat.setdefault(message.chat_id, []).append(message)
    for messages in messages_by_chat.values():
        messages.sort(key=lambda item: (item.created_at, item.message_id))
    return messages_by_chat


def _hydrate_revoked_token_ids(raw_revoked: object) -> dict[str, int]:
    if not isinstance(raw_revoked, dict):
        return {}
    now = int(time.time())
    return {
        token_id: expires_at
        for token_id, expires_at in raw_revoked.items()
        if isinstance(token_id, str)
        and isinstance(expires_at, int)
        and expires_at > now
    }


def _resolve_sequence(raw_sequences: object, key: str, existing_ids: list[int]) -> int:
    floor = max(existing_ids, default=0)
    if not isinstance(raw_sequences, dict):
        return floor
    value = raw_sequences.get(key)
    if not isinstance(value, int):
        return floor
    return max(value, floor)


def _build_store() -> RuntimeStore:
    persisted = _load_persisted_runtime_state()
    users = _hydrate_users(persisted.get("users"))
    chats = _hydrate_chats(persisted.get("chats"), users)
    messages_by_chat = _hydrate_messages(persisted.get("messages"), chats)
    revoked_token_ids = _hydrate_revoked_token_ids(persisted.get("revoked_token_ids"))
    raw_sequences = persisted.get("sequences")
    message_ids = [
        message.message_id
        for messages in messages_by_chat.values()
        for message in messages
    ]
    return RuntimeStore(
        users=users,
        chats=chats,
        messages_by_chat=messages_by_chat,
        user_sequence=_resolve_sequence(raw_sequences, "user", list(users)),
        chat_sequence=_resolve_sequence(raw_sequences, "chat", list(chats)),
        message_sequence=_resolve_sequence(raw_sequences, "message", message_ids),
        revoked_token_ids=revoked_token_ids,
    )


runtime_store = _build_store()
