"""Capability matrix for feature detection across LLM providers."""

from dataclasses import dataclass
from ticketflow.llm.types import LLMProvider


@dataclass(frozen=True)
class ProviderCapabilities:
    """What a provider can do."""
    tools: bool = False  # Function/tool calling
    json_schema: bool = False  # Structured output with schema
    vision: bool = False  # Image input
    system_message: bool = True  # Supports system role
    continuity: bool = False  # Resume a prior exchange by response id

    # Quirks
    max_tools: int = 128  # Max tools in single request


# Capability matrix by provider
CAPABILITIES: dict[LLMProvider, ProviderCapabilities] = {
    LLMProvider.OPENAI: ProviderCapabilities(
        tools=True,
        json_schema=True,
        vision=True,
        system_message=True,
        continuity=True,
        max_tools=128,
    ),
    LLMProvider.ANTHROPIC: ProviderCapabilities(
        tools=True,
        json_schema=True,
        vision=True,
        system_message=True,
        continuity=False,
        max_tools=128,
    ),
}


def get_capabilities(provider: LLMProvider) -> ProviderCapabilities:
    """Get capabilities for a provider."""
    return CAPABILITIES.get(provider, ProviderCapabilities())


def supports_feature(provider: LLMProvider, feature: str) -> bool:
    """Check if provider supports a specific feature."""
    caps = get_capabilities(provider)
    return getattr(caps, feature, False)
