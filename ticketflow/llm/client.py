"""UnifiedChatClient - Provider-agnostic LLM interface.

Usage:
    from ticketflow.llm import get_llm

    llm = get_llm()
    result = await llm.invoke(messages, tools=[...])

    # Resume a prior exchange where the provider supports it
    if llm.supports("continuity"):
        result = await llm.invoke([new_turn], previous_response_id=token)
"""

from pydantic import BaseModel

from ticketflow.llm.types import (
    LLMProvider,
    LLMConfig,
    LLMResult,
    Message,
    MessageRole,
)
from ticketflow.llm.adapters.base import BaseAdapter, ToolDefinition
from ticketflow.llm.factory import detect_provider, create_adapter, get_default_model
from ticketflow.llm.capabilities import supports_feature
from ticketflow.config import get_settings


class UnifiedChatClient:
    """Provider-agnostic LLM client.

    Handles provider detection, lazy adapter creation and capability
    checks. Business logic talks to this class only.
    """

    def __init__(
        self,
        model: str | None = None,
        provider: LLMProvider | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout_seconds: float = 60.0,
        api_key: str | None = None,
    ):
        settings = get_settings()

        if provider is None and model is None:
            model = settings.default_llm_model
            provider = detect_provider(model)
        elif provider is None:
            provider = detect_provider(model)
        elif model is None:
            model = get_default_model(provider)

        self.config = LLMConfig(
            provider=provider,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout_seconds=timeout_seconds,
            api_key=api_key,
        )

        self._adapter: BaseAdapter | None = None

    @property
    def adapter(self) -> BaseAdapter:
        """Lazy-load adapter."""
        if self._adapter is None:
            self._adapter = create_adapter(self.config)
        return self._adapter

    @property
    def provider(self) -> LLMProvider:
        return self.config.provider

    @property
    def model(self) -> str:
        return self.config.model

    def supports(self, feature: str) -> bool:
        """Check if current provider supports a feature (e.g. "tools", "continuity")."""
        return supports_feature(self.config.provider, feature)

    async def invoke(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_schema: type[BaseModel] | None = None,
        previous_response_id: str | None = None,
    ) -> LLMResult:
        """Send messages and get unified result.

        ``previous_response_id`` is dropped for providers without
        continuity support.

        Raises:
            ValueError: If requesting unsupported feature
        """
        if tools and not self.supports("tools"):
            raise ValueError(f"{self.provider} does not support tool calling")
        if response_schema and not self.supports("json_schema"):
            raise ValueError(f"{self.provider} does not support structured output")
        if previous_response_id and not self.supports("continuity"):
            previous_response_id = None

        return await self.adapter.invoke(
            messages=messages,
            tools=tools,
            response_schema=response_schema,
            previous_response_id=previous_response_id,
        )

    async def chat(self, user_message: str, system_message: str | None = None) -> str:
        """Simple chat interface - returns text only."""
        messages = []
        if system_message:
            messages.append(Message(role=MessageRole.SYSTEM, content=system_message))
        messages.append(Message(role=MessageRole.USER, content=user_message))

        result = await self.invoke(messages)
        return result.text


def get_llm(
    model: str | None = None,
    provider: LLMProvider | None = None,
    **kwargs,
) -> UnifiedChatClient:
    """Get an LLM client; provider is detected from the model name if omitted."""
    return UnifiedChatClient(model=model, provider=provider, **kwargs)
