"""Anthropic provider adapter using langchain-anthropic."""

import logging
import time
from typing import Any, Optional

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from ticketflow.config import get_settings
from ticketflow.llm.adapters.base import BaseAdapter, ToolDefinition
from ticketflow.llm.types import (
    FinishReason,
    LLMConfig,
    LLMProvider,
    LLMResult,
    Message,
    MessageRole,
)

logger = logging.getLogger(__name__)


class AnthropicAdapter(BaseAdapter):
    """Anthropic provider adapter using langchain-anthropic.

    Anthropic takes a single system prompt and has no server-side
    conversation state, so continuity tokens are ignored and the caller
    must send history.
    """

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        settings = get_settings()
        api_key = config.api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError("Anthropic API key required")

        self.client = ChatAnthropic(
            model=config.model,
            api_key=api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
        )

    def convert_messages(
        self, messages: list[Message]
    ) -> tuple[str | None, list[BaseMessage]]:
        """Convert canonical messages to LangChain format.

        Returns (system_message, other_messages); multiple system messages
        are joined.
        """
        system_parts = []
        result: list[BaseMessage] = []

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.content)
                continue
            converted = self.to_langchain(msg)
            if converted is not None:
                result.append(converted)

        return ("\n\n".join(system_parts) or None), result

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        """Convert tool definitions to Anthropic format."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.parameters,
            }
            for t in tools
        ]

    def parse_response(self, response: Any, latency_ms: float) -> LLMResult:
        """Parse LangChain response to unified format."""
        if isinstance(response, BaseModel):
            return LLMResult(
                text=response.model_dump_json(),
                provider=LLMProvider.ANTHROPIC,
                model=self.config.model,
                latency_ms=latency_ms,
                raw=response,
            )

        tool_calls = self.tool_calls_of(response)
        return LLMResult(
            text=self.text_of(getattr(response, "content", "")),
            tool_calls=tool_calls,
            finish_reason=FinishReason.TOOL_CALLS if tool_calls else FinishReason.STOP,
            provider=LLMProvider.ANTHROPIC,
            model=self.config.model,
            latency_ms=latency_ms,
            usage=self.usage_of(response),
            raw=response,
        )

    async def invoke(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_schema: type[BaseModel] | None = None,
        previous_response_id: Optional[str] = None,
    ) -> LLMResult:
        """Send messages to Anthropic and get unified result."""
        start_time = time.perf_counter()

        try:
            system_msg, lc_messages = self.convert_messages(messages)

            # Anthropic needs at least one non-system message
            if not lc_messages:
                lc_messages = [HumanMessage(content="Hello")]
            if system_msg:
                lc_messages = [SystemMessage(content=system_msg)] + lc_messages

            client = self.client
            if tools:
                client = client.bind_tools(self._convert_tools(tools))

            if response_schema:
                client = client.with_structured_output(response_schema)

            response = await client.ainvoke(lc_messages)

            latency_ms = (time.perf_counter() - start_time) * 1000

            result = self.parse_response(response, latency_ms)

            logger.info(
                "Anthropic request completed",
                extra={
                    "request_id": result.request_id,
                    "provider": result.provider.value,
                    "model": result.model,
                    "latency_ms": result.latency_ms,
                },
            )

            return result

        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"Anthropic request failed: {e}")
            return self.error_result(e, latency_ms)
