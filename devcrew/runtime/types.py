"""
devcrew Runtime Type Definitions

Core data types: bus messages, sessions, chat conversation entries,
tool calls and tool-loop responses.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional


BROADCAST = "broadcast"
USER = "User"


# ============================================
# Enums
# ============================================


class MessageType(str, Enum):
    """Closed set of bus message types"""

    HELP_REQUEST = "help_request"
    TASK_REQUEST = "task_request"
    TASK_RESPONSE = "task_response"
    TASK_COMPLETED = "task_completed"
    CODING_REQUEST = "coding_request"
    COORDINATION_REQUEST = "coordination_request"
    COORDINATION_RESPONSE = "coordination_response"
    FOLDER_REFRESH = "folder_refresh"


class SessionStatus(str, Enum):
    """Agent session status"""

    ACTIVE = "Active"
    COMPLETED = "Completed"


class SessionAction(str, Enum):
    """What a route does to the current session"""

    CONTINUE = "continue"
    CLEAR = "clear"


class RouteState(str, Enum):
    """Response router state. AWAITING_CONFIRMATION is a sub-state of COLLECTING."""

    COLLECTING = "Collecting"
    AWAITING_CONFIRMATION = "AwaitingConfirmation"
    COMPLETE = "Complete"


# ============================================
# Bus Messages
# ============================================


@dataclass(frozen=True)
class Message:
    """
    Message exchanged over the bus.

    Fields cannot be reassigned once created; only ``metadata`` may be
    enriched (session id stamping, routing trail).
    """

    sender: str
    recipient: str
    content: str
    type: MessageType = MessageType.TASK_REQUEST
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def session_id(self) -> Optional[str]:
        value = self.metadata.get("SessionId")
        return str(value) if value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


# ============================================
# Sessions
# ============================================


@dataclass
class AgentSession:
    """Per-conversation session owned by a single agent"""

    session_id: str
    user_id: str
    created_time: datetime
    last_activity_time: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    completed_time: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "created_time": self.created_time.isoformat(),
            "last_activity_time": self.last_activity_time.isoformat(),
            "completed_time": self.completed_time.isoformat() if self.completed_time else None,
            "status": self.status.value,
            "metadata": self.metadata,
        }


class SessionState(dict):
    """Open key/value blob remembered across iterations of one session"""


@dataclass
class SessionStats:
    """Snapshot of a session store"""

    total_sessions: int = 0
    active_sessions: int = 0
    completed_sessions: int = 0
    sessions_awaiting_confirmation: int = 0
    oldest_session_time: Optional[datetime] = None
    newest_session_time: Optional[datetime] = None


# ============================================
# Conversation & Tool Calls
# ============================================


@dataclass
class FunctionCall:
    """Function part of a tool call; ``arguments`` is the raw JSON string"""

    name: str
    arguments: str = "{}"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments}


@dataclass
class ToolCall:
    """Tool call requested by the completion service"""

    id: str
    function: FunctionCall
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    def arguments_object(self) -> Dict[str, Any]:
        """Decode the JSON arguments; malformed or non-object payloads yield {}."""
        if not self.function.arguments:
            return {}
        try:
            value = json.loads(self.function.arguments)
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": self.function.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        function = data.get("function") or {}
        arguments = function.get("arguments", "{}")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "function"),
            function=FunctionCall(name=function.get("name", ""), arguments=arguments),
        )


@dataclass
class ToolResult:
    """Outcome of executing (or refusing) a single tool call"""

    tool_call_id: str
    tool_name: str
    content: str
    is_success: bool


@dataclass
class ChatMessage:
    """One entry of a chat/tool-completion conversation"""

    role: str
    content: Optional[str] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            result["name"] = self.name
        if self.tool_calls is not None:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return result


@dataclass
class ToolCallResponse:
    """Result of a completion round trip, and of a whole tool-call loop"""

    content: str = ""
    tool_calls: Optional[List[ToolCall]] = None
    success: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None
    next_agent: Optional[str] = None
    is_complete: bool = False

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls] if self.tool_calls else None,
            "has_tool_calls": self.has_tool_calls,
            "success": self.success,
            "metadata": self.metadata,
            "session_id": self.session_id,
            "next_agent": self.next_agent,
            "is_complete": self.is_complete,
        }
