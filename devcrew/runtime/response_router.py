"""
devcrew Response Router

Decides where a final completion goes next, driven by the agent's ordered
response handlers.

A handler matches when any line of the response, stripped, starts with the
handler's instruction (case-insensitive). Content after the instruction
line is what gets forwarded; content before it never is.
"""

import re
from datetime import datetime
from typing import List, Optional, Sequence

from .agent_config import ResponseHandler, RouteTarget
from .message_bus import MessageBus
from .session_store import SessionStore
from .types import Message, MessageType, RouteState, SessionAction, SessionStatus, ToolCallResponse, USER
from ..utils.logger import get_logger

logger = get_logger(__name__)


USER_FALLBACK_MESSAGE = "Please provide more details."
ROUTE_MARKER = "ROUTE_TO_AGENT:"
HANDOVER_REASON = "Routed to another agent"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_lines(content: str) -> List[str]:
    return _LINE_BREAK.split(content) if content else []


def find_instruction_line(content: str, instruction: str) -> int:
    """Index of the first line starting with ``instruction``, or -1."""
    if not content or not instruction:
        return -1
    needle = instruction.lower()
    for index, line in enumerate(split_lines(content)):
        if line.strip().lower().startswith(needle):
            return index
    return -1


def contains_route_instruction(content: str, instruction: str) -> bool:
    return find_instruction_line(content, instruction) >= 0


def extract_content_after_instruction(content: str, instruction: str) -> str:
    """Everything after the instruction line, stripped; empty when absent."""
    index = find_instruction_line(content, instruction)
    if index < 0:
        return ""
    return "\n".join(split_lines(content)[index + 1:]).strip()


class ResponseRouter:
    """
    Routes an agent's final response to the user or to other agents.

    The outcome is written into the response itself: ``content`` becomes
    what the sender should see, and ``metadata`` records ``NextAgent``,
    ``RouteType``, ``SessionAction`` and ``RouteState``.
    """

    def __init__(
        self,
        agent_name: str,
        handlers: Sequence[ResponseHandler],
        sessions: SessionStore,
        bus: MessageBus,
    ):
        self.agent_name = agent_name
        self.handlers = tuple(handlers)
        self.sessions = sessions
        self.bus = bus
        self._logger = logger.bind(agent=agent_name)

    def match(self, content: str) -> Optional[ResponseHandler]:
        """First handler, in declaration order, whose instruction appears."""
        for handler in self.handlers:
            if contains_route_instruction(content, handler.instruction):
                return handler
        return None

    async def route(
        self, response: ToolCallResponse, message: Message, session_id: str
    ) -> ToolCallResponse:
        content = (response.content or "").strip()

        try:
            handled = False
            handler = self.match(content)
            if handler is not None:
                handled = await self._handle(handler, response, message, session_id, content)

            if not handled:
                self._logger.debug("No route instruction matched", session_id=session_id)
                if not self.sessions.is_awaiting_confirmation(session_id):
                    self.sessions.complete(
                        session_id,
                        {
                            "CompletedTime": datetime.now(),
                            "FinalResponse": response.content,
                            "OriginalRequest": message.content,
                        },
                    )
        except Exception as e:
            self._logger.error("Routing failed", session_id=session_id, error=str(e))
            response.metadata["Error"] = str(e)
            response.metadata["NextAgent"] = "None"
            self.sessions.force_complete(session_id)

        state = self.route_state(session_id)
        response.metadata["RouteState"] = state.value
        response.is_complete = state == RouteState.COMPLETE
        return response

    def route_state(self, session_id: str) -> RouteState:
        session = self.sessions.get(session_id)
        if session is None or session.status == SessionStatus.COMPLETED:
            return RouteState.COMPLETE
        if self.sessions.is_awaiting_confirmation(session_id):
            return RouteState.AWAITING_CONFIRMATION
        return RouteState.COLLECTING

    async def _handle(
        self,
        handler: ResponseHandler,
        response: ToolCallResponse,
        message: Message,
        session_id: str,
        content: str,
    ) -> bool:
        if not handler.targets:
            return False

        forwarded = extract_content_after_instruction(content, handler.instruction)

        user_target = handler.user_target()
        if user_target is not None:
            await self._route_to_user(user_target, response, session_id, forwarded)
            return True

        lowered = content.lower()
        for target in handler.targets:
            if f"{ROUTE_MARKER}{target.target}".lower() in lowered:
                await self._route_to_agent(target, response, message, session_id, forwarded)
                return True

        self._logger.warning(
            "Instruction matched but no target marker found",
            instruction=handler.instruction,
            session_id=session_id,
        )
        return False

    async def _route_to_user(
        self, target: RouteTarget, response: ToolCallResponse, session_id: str, forwarded: str
    ) -> None:
        awaiting = target.session_action == SessionAction.CONTINUE
        if awaiting:
            self.sessions.mark_awaiting_confirmation(session_id)
        else:
            self.sessions.complete(session_id)

        user_message = forwarded or USER_FALLBACK_MESSAGE
        await self.bus.publish(
            Message(
                sender=self.agent_name,
                recipient=USER,
                content=user_message,
                type=MessageType.TASK_RESPONSE,
                metadata={
                    "SessionId": session_id,
                    "SourceAgent": self.agent_name,
                    "IsRouteToUser": True,
                    "AwaitingConfirmation": awaiting,
                },
            )
        )
        self._logger.info("Routed to user", session_id=session_id, awaiting_confirmation=awaiting)

        response.content = user_message
        response.next_agent = USER
        response.metadata["NextAgent"] = USER
        response.metadata["RouteType"] = "Configured"
        response.metadata["AwaitingConfirmation"] = awaiting
        response.metadata["SessionAction"] = target.session_action.value

    async def _route_to_agent(
        self,
        target: RouteTarget,
        response: ToolCallResponse,
        message: Message,
        session_id: str,
        forwarded: str,
    ) -> None:
        if target.session_action == SessionAction.CLEAR:
            self.sessions.clear_awaiting_confirmation(session_id)
            self.sessions.complete(
                session_id,
                {
                    "NextAgent": target.target,
                    "CompletedTime": datetime.now(),
                    "HandoverReason": HANDOVER_REASON,
                    "SessionAction": target.session_action.value,
                },
            )

        await self.bus.publish(
            Message(
                sender=self.agent_name,
                recipient=target.target,
                content=forwarded,
                type=MessageType.TASK_REQUEST,
                metadata={
                    "SessionId": session_id,
                    "OriginalSender": message.sender,
                    "SourceAgent": self.agent_name,
                    "PreviousResponse": forwarded,
                },
            )
        )
        self._logger.info("Routed to agent", target=target.target, session_id=session_id)

        response.content = f"Requirements analysed, forwarding to {target.target}..."
        response.next_agent = target.target
        response.metadata["NextAgent"] = target.target
        response.metadata["RouteType"] = "Configured"
        response.metadata["TargetAgent"] = target.target
        response.metadata["SessionAction"] = target.session_action.value
