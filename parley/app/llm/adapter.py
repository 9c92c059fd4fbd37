from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from parley.app.chat.contracts import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ConversationTurn,
)
from parley.app.llm.contracts import (
    ChatCompletionMessage,
    ChatCompletionRequest,
    ChatCompletionTransport,
    GeminiChatRequest,
    GeminiChatTransport,
    GeminiTurn,
    GenerationSettings,
    ProviderError,
    ProviderName,
)
from parley.core.config import AppConfig

LOGGER = logging.getLogger(__name__)

GEMINI_ROLE_USER = "user"
GEMINI_ROLE_MODEL = "model"

REASONING_SYSTEM_INSTRUCTION = (
    "You are an AI assistant that provides detailed, accurate, and helpful answers. "
    "When analyzing problems, first write your detailed thought process surrounded "
    "by <think> tags like this: <think>Your detailed analysis here</think>. Then "
    "provide your clear direct answer immediately after. NEVER use double asterisks "
    "(**) for formatting in your responses. Instead use proper section headings and "
    "clean text formatting. For code examples, always use fenced markdown code "
    "blocks with a language tag, for example ```python."
)
GEMINI_OPENING_GREETING = "Hello, assist me with my questions."
GEMINI_STYLE_AFFIRMATION = (
    "I will provide detailed and well-formatted responses with proper headings and "
    "fenced code blocks, without using any asterisks (*) for emphasis or formatting."
)


@dataclass(frozen=True)
class ProviderProfiles:
    deepseek: GenerationSettings
    gemini: GenerationSettings


def build_provider_profiles(config: AppConfig) -> ProviderProfiles:
    return ProviderProfiles(
        deepseek=GenerationSettings(
            model=config.deepseek_model,
            temperature=0.6,
            top_p=0.7,
            max_output_tokens=4096,
        ),
        gemini=GenerationSettings(
            model=config.gemini_model,
            temperature=0.7,
            top_p=0.95,
            max_output_tokens=4096,
        ),
    )


def build_chat_completion_request(
    turns: Sequence[ConversationTurn],
    settings: GenerationSettings,
) -> ChatCompletionRequest:
    # earlier system turns are replaced by the fresh instruction
    messages = [
        ChatCompletionMessage(role=ROLE_SYSTEM, content=REASONING_SYSTEM_INSTRUCTION)
    ]
    messages.extend(
        ChatCompletionMessage(role=turn.role, content=turn.content)
        for turn in turns
        if turn.role != ROLE_SYSTEM
    )
    return ChatCompletionRequest(settings=settings, messages=tuple(messages))


def build_gemini_chat_request(
    turns: Sequence[ConversationTurn],
    settings: GenerationSettings,
) -> GeminiChatRequest:
    adapted = [
        GeminiTurn(
            role=GEMINI_ROLE_MODEL if turn.role == ROLE_ASSISTANT else GEMINI_ROLE_USER,
            text=turn.content,
        )
        for turn in turns
        if turn.role != ROLE_SYSTEM
    ]
    if not adapted:
        adapted = [GeminiTurn(role=GEMINI_ROLE_USER, text=GEMINI_OPENING_GREETING)]
    elif adapted[0].role != GEMINI_ROLE_USER:
        adapted = [
            GeminiTurn(role=GEMINI_ROLE_USER, text=GEMINI_OPENING_GREETING),
            GeminiTurn(role=GEMINI_ROLE_MODEL, text=GEMINI_STYLE_AFFIRMATION),
            *adapted,
        ]
    return GeminiChatRequest(
        settings=settings,
        history=tuple(adapted[:-1]),
        message=adapted[-1].text,
    )


class ChatAdapter:
    def __init__(
        self,
        *,
        profiles: ProviderProfiles,
        deepseek_transport: ChatCompletionTransport | None,
        gemini_transport: GeminiChatTransport | None,
    ) -> None:
        self._profiles = profiles
        self._deepseek_transport = deepseek_transport
        self._gemini_transport = gemini_transport

    def is_configured(self, provider: ProviderName) -> bool:
        if provider == ProviderName.DEEPSEEK:
            return self._deepseek_transport is not None
        return self._gemini_transport is not None

    async def generate_reply(
        self,
        provider: ProviderName,
        turns: Sequence[ConversationTurn],
    ) -> str | None:
        if not turns:
            raise ValueError("Conversation must contain at least one turn")
        if provider == ProviderName.DEEPSEEK:
            return await self._generate_deepseek(turns)
        if provider == ProviderName.GEMINI:
            return await self._generate_gemini(turns)
        raise ProviderError(str(provider), "Unsupported provider")

    async def _generate_deepseek(self, turns: Sequence[ConversationTurn]) -> str | None:
        if self._deepseek_transport is None:
            raise ProviderError(ProviderName.DEEPSEEK.value, "NVIDIA_API_KEY is not set")
        request = build_chat_completion_request(turns, self._profiles.deepseek)
        _log_request(ProviderName.DEEPSEEK, len(request.messages), request.settings)
        return await self._deepseek_transport.complete(request)

    async def _generate_gemini(self, turns: Sequence[ConversationTurn]) -> str | None:
        if self._gemini_transport is None:
            raise ProviderError(ProviderName.GEMINI.value, "GOOGLE_API_KEY is not set")
        request = build_gemini_chat_request(turns, self._profiles.gemini)
        _log_request(ProviderName.GEMINI, len(request.history) + 1, request.settings)
        return await self._gemini_transport.send(request)


def _log_request(
    provider: ProviderName,
    turn_count: int,
    settings: GenerationSettings,
) -> None:
    payload = {
        "provider": provider.value,
        "model": settings.model,
        "turn_count": turn_count,
    }
    LOGGER.info("provider_request %s", json.dumps(payload, sort_keys=True))
