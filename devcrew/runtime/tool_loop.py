"""
devcrew Tool-Call Loop

Bounded exchange with the completion service: every response that asks for
tools gets those tools executed (or refused) and their results appended to
the conversation before the next round trip.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

from .session_store import SessionStore
from .types import ChatMessage, ToolCall, ToolCallResponse, ToolResult
from ..llm.base import CompletionService
from ..tools.base import ToolExecutor
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_MAX_ITERATIONS = 10


def result_to_text(result: Any) -> str:
    """Render an opaque tool result as text for the conversation."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


class ToolCallLoop:
    """
    Drives completion ↔ tool execution until the model stops asking for tools.

    Features:
    - Per-agent tool allowlist resolved from service names
    - SessionId/Sender injection into tool arguments
    - Per-call error isolation
    - Results remembered in session state
    """

    def __init__(
        self,
        agent_name: str,
        completion: CompletionService,
        tools: ToolExecutor,
        allowed_services: Sequence[str],
        sessions: SessionStore,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.agent_name = agent_name
        self.completion = completion
        self.tools = tools
        self.allowed_services = list(allowed_services)
        self.sessions = sessions
        self.max_iterations = max_iterations
        self._logger = logger.bind(agent=agent_name)

    def allowed_tool_names(self) -> Set[str]:
        names: Set[str] = set()
        for service in self.allowed_services:
            names.update(self.tools.tool_names_for_service(service))
        return names

    async def run(
        self,
        conversation: List[ChatMessage],
        tool_services: Sequence[str],
        *,
        session_id: str,
        sender: str,
        max_iterations: Optional[int] = None,
    ) -> ToolCallResponse:
        """
        Run the loop to completion.

        Args:
            conversation: Conversation to extend in place
            tool_services: Services offered to the model
            session_id: Session the tool results belong to
            sender: Original sender, injected into tool arguments
            max_iterations: Override of the round trip cap

        Returns:
            Final response, or a failure response on error or exhaustion
        """
        cap = max_iterations or self.max_iterations
        iterations = 0
        response = ToolCallResponse()

        try:
            while iterations < cap:
                iterations += 1
                response = await self.completion.send(conversation, tool_services)

                if not response.success or not response.has_tool_calls:
                    break

                self._logger.info(
                    "Processing tool calls",
                    session_id=session_id,
                    iteration=iterations,
                    count=len(response.tool_calls),
                )
                results = await self.execute_tool_calls(response.tool_calls, session_id, sender)

                for tool_call in response.tool_calls:
                    conversation.append(
                        ChatMessage(role="assistant", content=None, tool_calls=[tool_call])
                    )
                for result in results:
                    conversation.append(
                        ChatMessage(
                            role="tool",
                            content=result.content,
                            tool_call_id=result.tool_call_id,
                            name=result.tool_name,
                        )
                    )
        except Exception as e:
            self._logger.error("Completion failed", session_id=session_id, error=str(e))
            return ToolCallResponse(
                content=f"Completion request failed: {e}",
                success=False,
                metadata={"Error": str(e), "Iterations": iterations},
                session_id=session_id,
            )

        if response.success and response.has_tool_calls:
            self._logger.warning(
                "Tool call iteration limit reached", session_id=session_id, max_iterations=cap
            )
            return ToolCallResponse(
                content=f"Stopped after {cap} tool-call iterations without a final answer.",
                success=False,
                metadata={"Error": "MaxIterationsExceeded", "Iterations": iterations},
                session_id=session_id,
            )

        response.metadata["Iterations"] = iterations
        response.session_id = session_id
        return response

    async def execute_tool_calls(
        self, tool_calls: Sequence[ToolCall], session_id: str, sender: str
    ) -> List[ToolResult]:
        """Execute each call in order; one failed call never aborts the others."""
        allowed = self.allowed_tool_names()
        results = []
        for tool_call in tool_calls:
            if tool_call.name not in allowed:
                self._logger.warning(
                    "Tool not configured for agent", tool_name=tool_call.name, session_id=session_id
                )
                result = ToolResult(
                    tool_call_id=tool_call.id,
                    tool_name=tool_call.name,
                    content=f"Tool '{tool_call.name}' is not available to {self.agent_name}",
                    is_success=False,
                )
            else:
                result = await self._execute_one(tool_call, session_id, sender)

            self._remember(session_id, result)
            results.append(result)
        return results

    async def _execute_one(self, tool_call: ToolCall, session_id: str, sender: str) -> ToolResult:
        arguments: Dict[str, Any] = tool_call.arguments_object()
        arguments["SessionId"] = session_id
        arguments["Sender"] = sender

        try:
            self._logger.debug("Executing tool", tool_name=tool_call.name, session_id=session_id)
            output = await self.tools.execute(tool_call.name, arguments)
            return ToolResult(
                tool_call_id=tool_call.id,
                tool_name=tool_call.name,
                content=result_to_text(output),
                is_success=True,
            )
        except Exception as e:
            self._logger.error(
                "Tool execution failed", tool_name=tool_call.name, session_id=session_id, error=str(e)
            )
            return ToolResult(
                tool_call_id=tool_call.id,
                tool_name=tool_call.name,
                content=f"Error executing {tool_call.name}: {e}",
                is_success=False,
            )

    def _remember(self, session_id: str, result: ToolResult) -> None:
        suffix = "Result" if result.is_success else "Error"
        self.sessions.update_state(
            session_id,
            {
                f"Tool_{result.tool_name}_{suffix}": result.content,
                f"Tool_{result.tool_name}_Time": datetime.now(),
            },
        )
