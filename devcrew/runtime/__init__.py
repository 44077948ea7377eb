"""
devcrew runtime

Message bus, sessions, prompt rendering, the tool-call loop, response
routing and the agents built on them.
"""

from .types import (
    BROADCAST,
    USER,
    AgentSession,
    ChatMessage,
    FunctionCall,
    Message,
    MessageType,
    RouteState,
    SessionAction,
    SessionState,
    SessionStats,
    SessionStatus,
    ToolCall,
    ToolCallResponse,
    ToolResult,
)
from .message_bus import MessageBus, Subscription
from .agent_config import AgentConfig, AgentConfigError, ResponseHandler, RouteTarget
from .session_store import SessionStore
from .prompt_builder import PromptBuilder
from .tool_loop import ToolCallLoop
from .response_router import ResponseRouter
from .agent import BaseAgent, ConfiguredAgent, ConfirmationPolicy, MarkerConfirmationPolicy
from .factory import AgentFactory, entry_agent
from .runtime import Runtime, create_runtime

__all__ = [
    # Types
    "BROADCAST",
    "USER",
    "AgentSession",
    "ChatMessage",
    "FunctionCall",
    "Message",
    "MessageType",
    "RouteState",
    "SessionAction",
    "SessionState",
    "SessionStats",
    "SessionStatus",
    "ToolCall",
    "ToolCallResponse",
    "ToolResult",
    # Components
    "MessageBus",
    "Subscription",
    "AgentConfig",
    "AgentConfigError",
    "ResponseHandler",
    "RouteTarget",
    "SessionStore",
    "PromptBuilder",
    "ToolCallLoop",
    "ResponseRouter",
    "BaseAgent",
    "ConfiguredAgent",
    "ConfirmationPolicy",
    "MarkerConfirmationPolicy",
    "AgentFactory",
    "entry_agent",
    "Runtime",
    "create_runtime",
]
