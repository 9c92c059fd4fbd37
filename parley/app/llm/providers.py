from __future__ import annotations

from typing import Any

import httpx

from parley.app.llm.adapter import ChatAdapter, build_provider_profiles
from parley.app.llm.contracts import (
    ChatCompletionRequest,
    GeminiChatRequest,
    ProviderError,
    ProviderName,
)
from parley.core.config import AppConfig


def _extract_status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int) and 100 <= value <= 599:
        return value
    return None


class DeepSeekTransport:
    """DeepSeek served through NVIDIA's OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        client: Any | None = None,
    ) -> None:
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(base_url=base_url, api_key=api_key, max_retries=0)
        self._client = client

    async def complete(self, request: ChatCompletionRequest) -> str | None:
        from openai import APIError

        try:
            completion = await self._client.chat.completions.create(
                model=request.settings.model,
                messages=[
                    {"role": message.role, "content": message.content}
                    for message in request.messages
                ],
                temperature=request.settings.temperature,
                top_p=request.settings.top_p,
                max_tokens=request.settings.max_output_tokens,
            )
        except APIError as exc:
            raise ProviderError(
                ProviderName.DEEPSEEK.value,
                exc.message or type(exc).__name__,
                status_code=_extract_status_code(exc),
            ) from exc
        if not completion.choices:
            return None
        return completion.choices[0].message.content


class GeminiTransport:
    def __init__(self, *, api_key: str, client: Any | None = None) -> None:
        if client is None:
            from google import genai

            client = genai.Client(api_key=api_key)
        self._client = client

    async def send(self, request: GeminiChatRequest) -> str | None:
        from google.genai import errors, types

        history = [
            types.Content(role=turn.role, parts=[types.Part(text=turn.text)])
            for turn in request.history
        ]
        config = types.GenerateContentConfig(
            temperature=request.settings.temperature,
            top_p=request.settings.top_p,
            max_output_tokens=request.settings.max_output_tokens,
        )
        try:
            chat = self._client.aio.chats.create(
                model=request.settings.model,
                config=config,
                history=history,
            )
            response = await chat.send_message(request.message)
        except errors.APIError as exc:
            raise ProviderError(
                ProviderName.GEMINI.value,
                exc.message or type(exc).__name__,
                status_code=_extract_status_code(exc),
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                ProviderName.GEMINI.value,
                f"transport failure: {type(exc).__name__}",
                status_code=_extract_status_code(exc),
            ) from exc
        return response.text


def build_chat_adapter(config: AppConfig) -> ChatAdapter:
    deepseek_transport = (
        DeepSeekTransport(
            api_key=config.nvidia_api_key,
            base_url=config.nvidia_base_url,
        )
        if config.nvidia_api_key
        else None
    )
    gemini_transport = (
        GeminiTransport(api_key=config.google_api_key)
        if config.google_api_key
        else None
    )
    return ChatAdapter(
        profiles=build_provider_profiles(config),
        deepseek_transport=deepseek_transport,
        gemini_transport=gemini_transport,
    )
