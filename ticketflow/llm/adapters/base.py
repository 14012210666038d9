"""Base adapter interface for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage
from pydantic import BaseModel

from ticketflow.llm.types import (
    FinishReason,
    LLMConfig,
    LLMResult,
    Message,
    MessageRole,
    TokenUsage,
    ToolCall,
)


class ToolDefinition(BaseModel):
    """Tool definition for function calling."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


class BaseAdapter(ABC):
    """Abstract base for LLM provider adapters."""

    def __init__(self, config: LLMConfig):
        self.config = config

    @abstractmethod
    async def invoke(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        response_schema: type[BaseModel] | None = None,
        previous_response_id: Optional[str] = None,
    ) -> LLMResult:
        """Send messages to LLM and get unified result."""
        pass

    @abstractmethod
    def convert_messages(self, messages: list[Message]) -> Any:
        """Convert canonical messages to provider format."""
        pass

    @abstractmethod
    def parse_response(self, response: Any, latency_ms: float) -> LLMResult:
        """Parse provider response to unified format."""
        pass

    # Shared LangChain conversions

    @staticmethod
    def to_langchain(msg: Message) -> BaseMessage | None:
        """Non-system canonical message as a LangChain message."""
        if msg.role == MessageRole.USER:
            if msg.image_urls:
                blocks: list[Any] = [{"type": "text", "text": msg.content}]
                blocks.extend(
                    {"type": "image_url", "image_url": {"url": url}} for url in msg.image_urls
                )
                return HumanMessage(content=blocks)
            return HumanMessage(content=msg.content)
        if msg.role == MessageRole.ASSISTANT:
            return AIMessage(
                content=msg.content,
                tool_calls=[
                    {"id": tc.id, "name": tc.name, "args": tc.arguments}
                    for tc in msg.tool_calls
                ],
            )
        if msg.role == MessageRole.TOOL:
            return ToolMessage(
                content=msg.content,
                tool_call_id=msg.tool_call_id or "",
                name=msg.name or "",
            )
        return None

    @staticmethod
    def text_of(content: Any) -> str:
        """Flatten string or content-block responses to text."""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = []
            for block in content:
                if isinstance(block, dict) and block.get("type") in ("text", "output_text"):
                    parts.append(block.get("text", ""))
                elif isinstance(block, str):
                    parts.append(block)
            return "".join(parts)
        return ""

    @staticmethod
    def tool_calls_of(response: Any) -> list[ToolCall]:
        return [
            ToolCall(
                id=tc.get("id") or "",
                name=tc.get("name", ""),
                arguments=tc.get("args", {}) or {},
            )
            for tc in (getattr(response, "tool_calls", None) or [])
        ]

    @staticmethod
    def usage_of(response: Any) -> TokenUsage:
        um = getattr(response, "usage_metadata", None)
        if not um:
            return TokenUsage()
        return TokenUsage(
            prompt_tokens=um.get("input_tokens", 0),
            completion_tokens=um.get("output_tokens", 0),
            total_tokens=um.get("total_tokens", 0),
        )

    def error_result(self, error: Exception, latency_ms: float) -> LLMResult:
        return LLMResult(
            text="",
            finish_reason=FinishReason.ERROR,
            provider=self.config.provider,
            model=self.config.model,
            latency_ms=latency_ms,
            error=str(error),
        )
