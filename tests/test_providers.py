import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest
from google.genai import types as genai_types

from parley.app.llm.contracts import (
    ChatCompletionMessage,
    ChatCompletionRequest,
    GeminiChatRequest,
    GeminiTurn,
    GenerationSettings,
    ProviderError,
    ProviderName,
)
from parley.app.llm.providers import (
    DeepSeekTransport,
    GeminiTransport,
    build_chat_adapter,
)
from parley.core.config import AppConfig

SETTINGS = GenerationSettings(
    model="test-model",
    temperature=0.6,
    top_p=0.7,
    max_output_tokens=4096,
)


class FakeCompletions:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.result


def _openai_client(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )


class FakeGeminiChat:
    def __init__(self, reply: str | None, error: Exception | None) -> None:
        self.reply = reply
        self.error = error
        self.sent: list[str] = []

    async def send_message(self, message: str):
        self.sent.append(message)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.reply)


class FakeGeminiChats:
    def __init__(
        self,
        reply: str | None = "ok",
        error: Exception | None = None,
    ) -> None:
        self.chat = FakeGeminiChat(reply, error)
        self.create_kwargs: dict = {}

    def create(self, **kwargs) -> FakeGeminiChat:
        self.create_kwargs = kwargs
        return self.chat


def _gemini_client(chats: FakeGeminiChats) -> SimpleNamespace:
    return SimpleNamespace(aio=SimpleNamespace(chats=chats))


def _config(**overrides) -> AppConfig:
    values = {
        "app_name": "Parley Chat",
        "app_version": "0.1.0",
        "environment": "test",
        "nvidia_api_key": None,
        "nvidia_base_url": "https://integrate.api.nvidia.com/v1",
        "deepseek_model": "deepseek-test",
        "google_api_key": None,
        "gemini_model": "gemini-test",
        "default_provider": "deepseek",
    }
    values.update(overrides)
    return AppConfig(**values)


def test_deepseek_transport_sends_openai_style_payload() -> None:
    completions = FakeCompletions(result=_completion("<think>x</think>y"))
    transport = DeepSeekTransport(
        api_key="key",
        base_url="https://example.invalid/v1",
        client=_openai_client(completions),
    )
    request = ChatCompletionRequest(
        settings=SETTINGS,
        messages=(
            ChatCompletionMessage(role="system", content="sys"),
            ChatCompletionMessage(role="user", content="hi"),
        ),
    )

    reply = asyncio.run(transport.complete(request))

    assert reply == "<think>x</think>y"
    assert completions.calls == [
        {
            "model": "test-model",
            "messages": [
                {"role": "system", "content": "sys"},
                {"role": "user", "content": "hi"},
            ],
            "temperature": 0.6,
            "top_p": 0.7,
            "max_tokens": 4096,
        }
    ]


def test_deepseek_transport_returns_none_without_choices() -> None:
    completions = FakeCompletions(result=SimpleNamespace(choices=[]))
    transport = DeepSeekTransport(
        api_key="key",
        base_url="https://example.invalid/v1",
        client=_openai_client(completions),
    )
    request = ChatCompletionRequest(settings=SETTINGS, messages=())

    assert asyncio.run(transport.complete(request)) is None


def test_deepseek_transport_wraps_api_errors() -> None:
    request_info = httpx.Request("POST", "https://example.invalid/v1/chat")
    error = openai.APIStatusError(
        "rate limited",
        response=httpx.Response(429, request=request_info),
        body=None,
    )
    transport = DeepSeekTransport(
        api_key="key",
        base_url="https://example.invalid/v1",
        client=_openai_client(FakeCompletions(error=error)),
    )

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(
            transport.complete(ChatCompletionRequest(settings=SETTINGS, messages=()))
        )

    assert exc_info.value.provider == ProviderName.DEEPSEEK.value
    assert exc_info.value.status_code == 429


def test_gemini_transport_builds_chat_session_from_history() -> None:
    chats = FakeGeminiChats(reply="gemini says hi")
    transport = GeminiTransport(api_key="key", client=_gemini_client(chats))
    request = GeminiChatRequest(
        settings=SETTINGS,
        history=(
            GeminiTurn(role="user", text="a"),
            GeminiTurn(role="model", text="b"),
        ),
        message="c",
    )

    reply = asyncio.run(transport.send(request))

    assert reply == "gemini says hi"
    assert chats.chat.sent == ["c"]
    assert chats.create_kwargs["model"] == "test-model"
    history = chats.create_kwargs["history"]
    assert all(isinstance(content, genai_types.Content) for content in history)
    assert isinstance(chats.create_kwargs["config"], genai_types.GenerateContentConfig)
    assert [content.role for content in history] == ["user", "model"]
    assert history[1].parts[0].text == "b"
    assert chats.create_kwargs["config"].max_output_tokens == 4096


def test_gemini_transport_wraps_transport_failures() -> None:
    chats = FakeGeminiChats(error=httpx.ConnectError("boom"))
    transport = GeminiTransport(api_key="key", client=_gemini_client(chats))
    request = GeminiChatRequest(settings=SETTINGS, history=(), message="hi")

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(transport.send(request))

    assert exc_info.value.provider == ProviderName.GEMINI.value
    assert "ConnectError" in exc_info.value.message


def test_build_chat_adapter_only_configures_providers_with_keys() -> None:
    adapter = build_chat_adapter(_config())

    assert not adapter.is_configured(ProviderName.DEEPSEEK)
    assert not adapter.is_configured(ProviderName.GEMINI)
