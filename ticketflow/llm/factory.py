"""Factory functions for creating LLM adapters."""

from ticketflow.llm.types import LLMProvider, LLMConfig
from ticketflow.llm.adapters.base import BaseAdapter


def detect_provider(model: str) -> LLMProvider:
    """Detect provider from model name.

    Examples:
        >>> detect_provider("gpt-4o")
        LLMProvider.OPENAI
        >>> detect_provider("claude-3-5-sonnet-latest")
        LLMProvider.ANTHROPIC
    """
    model_lower = model.lower()
    if model_lower.startswith("claude"):
        return LLMProvider.ANTHROPIC
    # gpt-*, o1/o3/o4 reasoning models and anything unrecognised
    return LLMProvider.OPENAI


def create_adapter(config: LLMConfig) -> BaseAdapter:
    """Create adapter instance for the specified provider.

    Raises:
        ValueError: If provider is unknown or its API key is missing.
    """
    if config.provider == LLMProvider.OPENAI:
        from ticketflow.llm.adapters.openai import OpenAIAdapter
        return OpenAIAdapter(config)
    elif config.provider == LLMProvider.ANTHROPIC:
        from ticketflow.llm.adapters.anthropic import AnthropicAdapter
        return AnthropicAdapter(config)
    else:
        raise ValueError(f"Unknown provider: {config.provider}")


def get_default_model(provider: LLMProvider) -> str:
    """Get default model for a provider."""
    defaults = {
        LLMProvider.OPENAI: "gpt-4o",
        LLMProvider.ANTHROPIC: "claude-3-5-sonnet-latest",
    }
    return defaults.get(provider, "gpt-4o")
