from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import replace

from parley.app.chat.contracts import (
    DEFAULT_CHAT_TITLE,
    ROLE_ASSISTANT,
    ROLE_USER,
    Chat,
    ConversationTurn,
    Message,
    MessageExchange,
)
from parley.app.llm.adapter import ChatAdapter
from parley.app.llm.contracts import ProviderError, ProviderName
from parley.app.observability.service import (
    create_provider_trace,
    record_provider_trace,
)
from parley.app.runtime.store import RuntimeStore, persist_runtime_state

EMPTY_REPLY_FALLBACK = "I'm sorry, I couldn't generate a response."
TITLE_MAX_LENGTH = 50


class NothingToRegenerateError(ValueError):
    pass


class ConversationChangedError(RuntimeError):
    pass


def list_chats(*, store: RuntimeStore, user_id: int) -> list[Chat]:
    chats = [chat for chat in store.chats.values() if chat.user_id == user_id]
    return sorted(
        chats,
        key=lambda chat: (chat.updated_at, chat.chat_id),
        reverse=True,
    )


def get_chat(*, store: RuntimeStore, chat_id: int) -> Chat | None:
    return store.chats.get(chat_id)


def create_chat(
    *,
    store: RuntimeStore,
    user_id: int,
    title: str | None = None,
) -> Chat:
    now = int(time.time())
    chat = Chat(
        chat_id=store.next_chat_id(),
        user_id=user_id,
        title=(title or "").strip() or DEFAULT_CHAT_TITLE,
        created_at=now,
        updated_at=now,
    )
    store.chats[chat.chat_id] = chat
    store.messages_by_chat[chat.chat_id] = []
    persist_runtime_state(store)
    return chat


def update_chat_title(*, store: RuntimeStore, chat_id: int, title: str) -> Chat | None:
    chat = store.chats.get(chat_id)
    if not chat:
        return None
    updated = replace(chat, title=title, updated_at=int(time.time()))
    store.chats[chat_id] = updated
    persist_runtime_state(store)
    return updated


def delete_chat(*, store: RuntimeStore, chat_id: int) -> bool:
    store.messages_by_chat.pop(chat_id, None)
    deleted = store.chats.pop(chat_id, None)
    persist_runtime_state(store)
    return deleted is not None


def list_messages(*, store: RuntimeStore, chat_id: int) -> tuple[Message, ...]:
    return tuple(store.messages_by_chat.get(chat_id, []))


def create_message(
    *,
    store: RuntimeStore,
    chat_id: int,
    role: str,
    content: str,
    provider: str | None = None,
) -> Message:
    now = int(time.time())
    message = Message(
        message_id=store.next_message_id(),
        chat_id=chat_id,
        role=role,
        content=content,
        provider=provider,
        created_at=now,
    )
    store.messages_by_chat.setdefault(chat_id, []).append(message)
    chat = store.chats.get(chat_id)
    if chat:
        store.chats[chat_id] = replace(chat, updated_at=now)
    persist_runtime_state(store)
    return message


def conversation_turns(messages: Sequence[Message]) -> tuple[ConversationTurn, ...]:
    return tuple(
        ConversationTurn(
            role=message.role,
            content=message.content,
            provider=message.provider,
        )
        for message in messages
    )


def derive_chat_title(content: str) -> str:
    title = content.strip()
    if len(title) > TITLE_MAX_LENGTH:
        return f"{title[:TITLE_MAX_LENGTH]}..."
    return title or DEFAULT_CHAT_TITLE


async def send_message(
    *,
    store: RuntimeStore,
    adapter: ChatAdapter,
    chat: Chat,
    content: str,
    provider: ProviderName,
) -> MessageExchange:
    is_first_exchange = not store.messages_by_chat.get(chat.chat_id)
    user_message = create_message(
        store=store,
        chat_id=chat.chat_id,
        role=ROLE_USER,
        content=content,
        provider=provider.value,
    )
    reply = await _generate_reply_text(
        store=store,
        adapter=adapter,
        chat=chat,
        provider=provider,
        turns=conversation_turns(list_messages(store=store, chat_id=chat.chat_id)),
    )
    assistant_message = create_message(
        store=store,
        chat_id=chat.chat_id,
        role=ROLE_ASSISTANT,
        content=reply,
        provider=provider.value,
    )
    if is_first_exchange:
        update_chat_title(
            store=store,
            chat_id=chat.chat_id,
            title=derive_chat_title(content),
        )
    return MessageExchange(
        user_message=user_message,
        assistant_message=assistant_message,
    )


async def regenerate_reply(
    *,
    store: RuntimeStore,
    adapter: ChatAdapter,
    chat: Chat,
    provider: ProviderName | None = None,
) -> MessageExchange:
    messages = list(store.messages_by_chat.get(chat.chat_id, []))
    snapshot_ids = [message.message_id for message in messages]
    previous_provider: str | None = None
    if messages and messages[-1].role == ROLE_ASSISTANT:
        previous_provider = messages.pop().provider
    if not messages or messages[-1].role != ROLE_USER:
        raise NothingToRegenerateError("No user message to answer")

    resolved_provider = provider or _provider_from_history(
        previous_provider, messages[-1].provider
    )
    reply = await _generate_reply_text(
        store=store,
        adapter=adapter,
        chat=chat,
        provider=resolved_provider,
        turns=conversation_turns(messages),
    )
    live_ids = [
        message.message_id
        for message in store.messages_by_chat.get(chat.chat_id, [])
    ]
    if chat.chat_id not in store.chats or live_ids != snapshot_ids:
        raise ConversationChangedError("Conversation changed during regeneration")
    # the replaced reply is only dropped once the new one exists
    store.messages_by_chat[chat.chat_id] = messages
    assistant_message = create_message(
        store=store,
        chat_id=chat.chat_id,
        role=ROLE_ASSISTANT,
        content=reply,
        provider=resolved_provider.value,
    )
    return MessageExchange(user_message=None, assistant_message=assistant_message)


def _provider_from_history(*candidates: str | None) -> ProviderName:
    for candidate in candidates:
        if candidate in {item.value for item in ProviderName}:
            return ProviderName(candidate)
    return ProviderName.DEEPSEEK


async def _generate_reply_text(
    *,
    store: RuntimeStore,
    adapter: ChatAdapter,
    chat: Chat,
    provider: ProviderName,
    turns: Sequence[ConversationTurn],
) -> str:
    started_at = time.perf_counter()
    try:
        reply = await adapter.generate_reply(provider, turns)
    except ProviderError as exc:
        record_provider_trace(
            store.provider_trace_log,
            create_provider_trace(
                provider=provider.value,
                chat_id=chat.chat_id,
                user_id=chat.user_id,
                started_at=started_at,
                status="error",
                status_code=exc.status_code,
                error_message=exc.message,
            ),
        )
        raise
    record_provider_trace(
        store.provider_trace_log,
        create_provider_trace(
            provider=provider.value,
            chat_id=chat.chat_id,
            user_id=chat.user_id,
            started_at=started_at,
        ),
    )
    return reply if reply and reply.strip() else EMPTY_REPLY_FALLBACK
