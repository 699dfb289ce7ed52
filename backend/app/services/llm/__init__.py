"""LLM provider factory."""

from app.services.llm.base import BaseLLMProvider


def get_llm_provider(api_key: str | None = None) -> BaseLLMProvider:
    """Factory function that returns the configured completion provider."""
    from app.services.llm.anthropic import AnthropicProvider
    return AnthropicProvider(api_key=api_key)
