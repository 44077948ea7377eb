"""
Anthropic messages API adapter.

Converts the chat-completions shaped conversation used by the runtime into
Anthropic format and back.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from anthropic import AsyncAnthropic, APIError

from .base import CompletionService
from ..runtime.types import ChatMessage, FunctionCall, ToolCall, ToolCallResponse
from ..tools.base import ToolRegistry
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_MODEL = "claude-sonnet-4-20250514"


def convert_messages(conversation: Sequence[ChatMessage]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """
    Convert chat messages to Anthropic API format.

    System messages are joined into the separate ``system`` prompt. Assistant
    tool calls become ``tool_use`` blocks and tool messages become
    ``tool_result`` blocks in a user turn. Consecutive turns of the same role
    are merged, as the API requires alternating roles.

    Returns:
        (system prompt or None, list of Anthropic message dicts)
    """
    system_parts = []
    anthropic_messages: List[Dict[str, Any]] = []

    for msg in conversation:
        if msg.role == "system":
            if msg.content:
                system_parts.append(msg.content)
            continue

        content: List[Dict[str, Any]] = []
        if msg.role == "tool":
            role = "user"
            content.append({
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id or "",
                "content": msg.content or "",
            })
        else:
            role = "assistant" if msg.role == "assistant" else "user"
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls or []:
                content.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tc.arguments_object(),
                })

        if not content:
            continue

        if anthropic_messages and anthropic_messages[-1]["role"] == role:
            anthropic_messages[-1]["content"].extend(content)
        else:
            anthropic_messages.append({"role": role, "content": content})

    system = "\n".join(system_parts) if system_parts else None
    return system, anthropic_messages


class AnthropicCompletionService(CompletionService):
    """Completion service backed by ``AsyncAnthropic().messages.create``."""

    def __init__(
        self,
        api_key: str,
        registry: ToolRegistry,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 1.0,
        base_url: Optional[str] = None,
        timeout: int = 120,
    ):
        self.registry = registry
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url, timeout=timeout)
        logger.info("AnthropicCompletionService initialized", model=model)

    async def send(
        self,
        conversation: Sequence[ChatMessage],
        tool_services: Sequence[str] = (),
    ) -> ToolCallResponse:
        system, messages = convert_messages(conversation)

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": messages,
        }
        if system:
            request["system"] = system
        tools = self.registry.claude_schemas(tool_services)
        if tools:
            request["tools"] = tools

        try:
            result = await self.client.messages.create(**request)
        except APIError as e:
            logger.error("Anthropic request failed", error=str(e))
            return ToolCallResponse(
                content=f"Completion request failed: {e}",
                success=False,
                metadata={"Error": str(e)},
            )

        text_parts = []
        tool_calls = []
        for block in result.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.id,
                        function=FunctionCall(
                            name=block.name,
                            arguments=json.dumps(block.input, ensure_ascii=False),
                        ),
                    )
                )

        metadata: Dict[str, Any] = {"FinishReason": result.stop_reason}
        if result.usage is not None:
            metadata["Usage"] = {
                "input_tokens": result.usage.input_tokens,
                "output_tokens": result.usage.output_tokens,
            }

        return ToolCallResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            success=True,
            metadata=metadata,
        )

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self.client.close()
        logger.info("AnthropicCompletionService closed")
