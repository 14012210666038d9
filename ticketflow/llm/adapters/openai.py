"""OpenAI provider adapter using langchain-openai (Responses API)."""

import logging
import time
from typing import Any, Optional

from langchain_core.messages import BaseMessage, SystemMessage
from langchain_openai import ChatOpenAI
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


class OpenAIAdapter(BaseAdapter):
    """OpenAI adapter. Returns a response id usable as a continuity token."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        settings = get_settings()
        api_key = config.api_key or settings.openai_api_key
        if not api_key:
            raise ValueError("OpenAI API key required")

        self.client = ChatOpenAI(
            model=config.model,
            api_key=api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            use_responses_api=True,
        )

    def convert_messages(self, messages: list[Message]) -> list[BaseMessage]:
        """Convert canonical messages to LangChain format."""
        result: list[BaseMessage] = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                result.append(SystemMessage(content=msg.content))
                continue
            converted = self.to_langchain(msg)
            if converted is not None:
                result.append(converted)
        return result

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict]:
        """Convert tool definitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in tools
        ]

    def parse_response(self, response: Any, latency_ms: float) -> LLMResult:
        """Parse LangChain response to unified format."""
        if isinstance(response, BaseModel):
            # with_structured_output returns the parsed model directly
            return LLMResult(
                text=response.model_dump_json(),
                provider=LLMProvider.OPENAI,
                model=self.config.model,
                latency_ms=latency_ms,
                raw=response,
            )

        tool_calls = self.tool_calls_of(response)
        metadata = getattr(response, "response_metadata", None) or {}
        return LLMResult(
            text=self.text_of(getattr(response, "content", "")),
            tool_calls=tool_calls,
            finish_reason=FinishReason.TOOL_CALLS if tool_calls else FinishReason.STOP,
            provider=LLMProvider.OPENAI,
            model=self.config.model,
            response_id=metadata.get("id"),
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
        """Send messages to OpenAI and get unified result.

        With ``previous_response_id`` the service resumes the referenced
        exchange, so ``messages`` only needs the new turn.
        """
        start_time = time.perf_counter()

        try:
            lc_messages = self.convert_messages(messages)

            client = self.client
            if tools:
                client = client.bind_tools(self._convert_tools(tools))

            if response_schema:
                client = client.with_structured_output(response_schema)
                response = await client.ainvoke(lc_messages)
            elif previous_response_id:
                response = await client.ainvoke(
                    lc_messages, previous_response_id=previous_response_id
                )
            else:
                response = await client.ainvoke(lc_messages)

            latency_ms = (time.perf_counter() - start_time) * 1000

            result = self.parse_response(response, latency_ms)

            logger.info(
                "OpenAI request completed",
                extra={
                    "request_id": result.request_id,
                    "provider": result.provider.value,
                    "model": result.model,
                    "latency_ms": result.latency_ms,
                    "continued": bool(previous_response_id),
                },
            )

            return result

        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"OpenAI request failed: {e}")
            return self.error_result(e, latency_ms)
