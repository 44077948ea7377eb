"""
Completion capability.

A completion service takes an OpenAI-shaped conversation plus the tool
services an agent may use, and returns one ``ToolCallResponse``.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from ..runtime.types import ChatMessage, ToolCallResponse


class CompletionService(ABC):
    """Remote chat/tool-completion API"""

    @abstractmethod
    async def send(
        self,
        conversation: Sequence[ChatMessage],
        tool_services: Sequence[str] = (),
    ) -> ToolCallResponse:
        """
        Send a conversation and return the model's reply.

        Args:
            conversation: Ordered chat messages
            tool_services: Service names whose tools the model may call

        Returns:
            Response carrying content and/or tool calls
        """

    async def close(self) -> None:
        """Release network resources."""
