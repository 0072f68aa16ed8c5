"""LLM provider factory.

Supports OpenAI and any OpenAI-compatible API:
- OpenAI (default): Direct OpenAI API access
- OpenRouter, Together, Groq, Ollama: via their OpenAI-compatible endpoints
- Custom: set LLM_BASE_URL

Environment variables:
- LLM_PROVIDER: openai (default), openrouter, together, groq, ollama, custom
- LLM_MODEL / OPENAI_MODEL: Model name (e.g., gpt-4o-mini)
- LLM_API_KEY / OPENAI_API_KEY: API key for the provider
- LLM_BASE_URL: Custom base URL for OpenAI-compatible APIs
- LLM_TEMPERATURE: Generation temperature (0.0-2.0)
"""

from typing import Any

from langchain_core.language_models import BaseChatModel

from relnotes.exceptions import ConfigurationError
from relnotes.settings import Settings, get_settings

# Provider base URLs
PROVIDER_BASE_URLS = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": "https://api.openai.com/v1",
    "together": "https://api.together.xyz/v1",
    "groq": "https://api.groq.com/openai/v1",
    "ollama": "http://localhost:11434/v1",
}


def get_llm(
    temperature: float | None = None,
    model: str | None = None,
    provider: str | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> BaseChatModel:
    """Get a streaming chat model for the configured provider.

    Args:
        temperature: Override default temperature
        model: Override default model name
        provider: Override default provider
        settings: Settings to read (defaults to get_settings())
        **kwargs: Additional provider-specific arguments

    Returns:
        Configured chat model

    Raises:
        ConfigurationError: If the provider is unknown or the API key is missing
    """
    from langchain_openai import ChatOpenAI

    settings = settings or get_settings()
    provider = provider or settings.llm_provider
    model_name = model or settings.llm_model
    temp = temperature if temperature is not None else settings.llm_temperature

    api_key = settings.llm_api_key.get_secret_value()
    if not api_key and provider != "ollama":
        raise ConfigurationError(f"LLM_API_KEY is required when using {provider} provider")

    base_url = settings.llm_base_url
    if base_url is None:
        base_url = PROVIDER_BASE_URLS.get(provider)
        if base_url is None:
            raise ConfigurationError(
                f"Unknown provider '{provider}'. Set LLM_BASE_URL for custom providers."
            )

    llm_kwargs: dict[str, Any] = {
        "model": model_name,
        "temperature": temp,
        "streaming": True,
        **kwargs,
    }

    if api_key:
        llm_kwargs["api_key"] = api_key
    elif provider == "ollama":
        llm_kwargs["api_key"] = "ollama"

    if base_url:
        llm_kwargs["base_url"] = base_url

    # Add headers for OpenRouter
    if provider == "openrouter":
        llm_kwargs.setdefault("default_headers", {})
        llm_kwargs["default_headers"]["X-Title"] = "relnotes"

    return ChatOpenAI(**llm_kwargs)

