from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_NVIDIA_BASE_URL = "https://integrate.api.nvidia.com/v1"
DEFAULT_DEEPSEEK_MODEL = "deepseek-ai/deepseek-r1-distill-qwen-32b"
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    nvidia_api_key: str | None
    nvidia_base_url: str
    deepseek_model: str
    google_api_key: str | None
    gemini_model: str
    default_provider: str


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=os.getenv("APP_NAME", "Parley Chat"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        environment=os.getenv("APP_ENV", "development"),
        nvidia_api_key=_read_optional_env("NVIDIA_API_KEY"),
        nvidia_base_url=_read_optional_env("NVIDIA_BASE_URL")
        or DEFAULT_NVIDIA_BASE_URL,
        deepseek_model=_read_optional_env("DEEPSEEK_MODEL") or DEFAULT_DEEPSEEK_MODEL,
        google_api_key=_read_optional_env("GOOGLE_API_KEY")
        or _read_optional_env("GEMINI_API_KEY"),
        gemini_model=_read_optional_env("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        default_provider=(_read_optional_env("DEFAULT_PROVIDER") or "deepseek").lower(),
    )

