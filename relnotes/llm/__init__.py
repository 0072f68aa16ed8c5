"""LLM provider factory."""

from relnotes.llm.factory import PROVIDER_BASE_URLS, get_llm

__all__ = ["PROVIDER_BASE_URLS", "get_llm"]
