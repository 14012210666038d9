"""LLM abstraction layer (OpenAI, Anthropic) with unified types.

Usage:
    from ticketflow.llm import get_llm, Message, MessageRole

    llm = get_llm()
    result = await llm.invoke([Message(role=MessageRole.USER, content="Hi")])
"""

# Enums
from ticketflow.llm.types import (
    LLMProvider,
    MessageRole,
    FinishReason,
)

# Core types
from ticketflow.llm.types import (
    Message,
    ToolCall,
    TokenUsage,
    LLMResult,
    LLMConfig,
)
from ticketflow.llm.adapters.base import ToolDefinition

# Capabilities
from ticketflow.llm.capabilities import (
    ProviderCapabilities,
    CAPABILITIES,
    get_capabilities,
    supports_feature,
)

# Client and Factory
from ticketflow.llm.client import (
    UnifiedChatClient,
    get_llm,
)
from ticketflow.llm.factory import (
    detect_provider,
    create_adapter,
    get_default_model,
)

__all__ = [
    # Enums
    "LLMProvider",
    "MessageRole",
    "FinishReason",
    # Core types
    "Message",
    "ToolCall",
    "TokenUsage",
    "LLMResult",
    "LLMConfig",
    "ToolDefinition",
    # Capabilities
    "ProviderCapabilities",
    "CAPABILITIES",
    "get_capabilities",
    "supports_feature",
    # Client
    "UnifiedChatClient",
    "get_llm",
    # Factory
    "detect_provider",
    "create_adapter",
    "get_default_model",
]
