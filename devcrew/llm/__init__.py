"""Completion services."""

from .base import CompletionService
from .chat_completions import ChatCompletionsService
from .anthropic_service import AnthropicCompletionService

__all__ = [
    "CompletionService",
    "ChatCompletionsService",
    "AnthropicCompletionService",
]
