from parley.core.config import (
    DEFAULT_DEEPSEEK_MODEL,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_NVIDIA_BASE_URL,
    load_app_config,
)

PROVIDER_ENV_VARS = (
    "NVIDIA_API_KEY",
    "NVIDIA_BASE_URL",
    "DEEPSEEK_MODEL",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "DEFAULT_PROVIDER",
)


def _clear_provider_env(monkeypatch) -> None:
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_load_app_config_defaults_without_credentials(monkeypatch) -> None:
    _clear_provider_env(monkeypatch)

    config = load_app_config()

    assert config.nvidia_api_key is None
    assert config.google_api_key is None
    assert config.nvidia_base_url == DEFAULT_NVIDIA_BASE_URL
    assert config.deepseek_model == DEFAULT_DEEPSEEK_MODEL
    assert config.gemini_model == DEFAULT_GEMINI_MODEL
    assert config.default_provider == "deepseek"


def test_load_app_config_ignores_blank_keys(monkeypatch) -> None:
    _clear_provider_env(monkeypatch)
    monkeypatch.setenv("NVIDIA_API_KEY", "   ")

    assert load_app_config().nvidia_api_key is None


def test_google_key_falls_back_to_gemini_api_key(monkeypatch) -> None:
    _clear_provider_env(monkeypatch)
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")

    assert load_app_config().google_api_key == "gemini-key"

    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")

    assert load_app_config().google_api_key == "google-key"


def test_default_provider_is_normalised(monkeypatch) -> None:
    _clear_provider_env(monkeypatch)
    monkeypatch.setenv("DEFAULT_PROVIDER", " Gemini ")

    assert load_app_config().default_provider == "gemini"
