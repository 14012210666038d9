"""LLM provider adapters package."""

from ticketflow.llm.adapters.anthropic import AnthropicAdapter
from ticketflow.llm.adapters.base import BaseAdapter, ToolDefinition
from ticketflow.llm.adapters.openai import OpenAIAdapter

__all__ = [
    "AnthropicAdapter",
    "BaseAdapter",
    "ToolDefinition",
    "OpenAIAdapter",
]
