from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class ProviderName(str, Enum):
    DEEPSEEK = "deepseek"
    GEMINI = "gemini"


PROVIDER_LABELS = {
    ProviderName.DEEPSEEK: "DeepSeek AI",
    ProviderName.GEMINI: "Gemini AI",
}


class ProviderError(Exception):
    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class GenerationSettings:
    model: str
    temperature: float
    top_p: float
    max_output_tokens: int


@dataclass(frozen=True)
class ChatCompletionMessage:
    role: str
    content: str


@dataclass(frozen=True)
class ChatCompletionRequest:
    """OpenAI-style request: one flat message list including the system turn."""

    settings: GenerationSettings
    messages: tuple[ChatCompletionMessage, ...]


@dataclass(frozen=True)
class GeminiTurn:
    role: str
    text: str


@dataclass(frozen=True)
class GeminiChatRequest:
    """Chat-session request: prior turns as history plus one live message."""

    settings: GenerationSettings
    history: tuple[GeminiTurn, ...]
    message: str


class ChatCompletionTransport(Protocol):
    async def complete(self, request: ChatCompletionRequest) -> str | None: ...


class GeminiChatTransport(Protocol):
    async def send(self, request: GeminiChatRequest) -> str | None: ...
