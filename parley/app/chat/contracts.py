from __future__ import annotations

from dataclasses import dataclass

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
CHAT_ROLES = frozenset({ROLE_USER, ROLE_ASSISTANT, ROLE_SYSTEM})

DEFAULT_CHAT_TITLE = "New Chat"


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str
    provider: str | None = None


@dataclass(frozen=True)
class User:
    user_id: int
    username: str
    password_hash: str
    created_at: int


@dataclass(frozen=True)
class Chat:
    chat_id: int
    user_id: int
    title: str
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Message:
    message_id: int
    chat_id: int
    role: str
    content: str
    provider: str | None
    created_at: int


@dataclass(frozen=True)
class MessageExchange:
    user_message: Message | None
    assistant_message: Message
