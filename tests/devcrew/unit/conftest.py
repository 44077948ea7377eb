"""
Shared fixtures for devcrew unit tests
"""

import json
from typing import Any, Callable, Dict, List, Sequence, Union

import pytest

from devcrew.llm.base import CompletionService
from devcrew.runtime.message_bus import MessageBus
from devcrew.runtime.types import ChatMessage, FunctionCall, ToolCall, ToolCallResponse
from devcrew.tools.base import ToolRegistry


Reply = Union[ToolCallResponse, Exception, Callable[[List[ChatMessage]], ToolCallResponse]]


class ScriptedCompletion(CompletionService):
    """Completion service that plays back scripted replies; the last one repeats."""

    def __init__(self, *replies: Reply):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def send(self, conversation: Sequence[ChatMessage], tool_services: Sequence[str] = ()) -> ToolCallResponse:
        self.calls.append({
            "conversation": [m.to_dict() for m in conversation],
            "tool_services": list(tool_services),
        })
        if not self.replies:
            return ToolCallResponse(content="")

        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(list(conversation))
        # Fresh copy so routing metadata never leaks between calls
        return ToolCallResponse(
            content=reply.content,
            tool_calls=list(reply.tool_calls) if reply.tool_calls else None,
            success=reply.success,
            metadata=dict(reply.metadata),
        )

    async def close(self) -> None:
        self.closed = True


def make_tool_call(name: str, arguments: Dict[str, Any] = None, call_id: str = "call_1") -> ToolCall:
    return ToolCall(id=call_id, function=FunctionCall(name=name, arguments=json.dumps(arguments or {})))


@pytest.fixture
def scripted():
    """Factory for ScriptedCompletion"""
    return ScriptedCompletion


@pytest.fixture
def tool_call():
    """Factory for ToolCall"""
    return make_tool_call


@pytest.fixture
def bus():
    bus = MessageBus()
    yield bus
    bus.close()


@pytest.fixture
def registry():
    """Registry with an 'Echo' service and a failing 'Broken' service"""
    registry = ToolRegistry()
    calls = []

    def echo(text: str = "", **kwargs):
        calls.append({"text": text, **kwargs})
        return {"echo": text}

    async def explode(**kwargs):
        raise RuntimeError("boom")

    schema = {"type": "object", "properties": {"text": {"type": "string"}}}
    registry.register_function("echo", "Echo text back", schema, echo, service="Echo")
    registry.register_function("explode", "Always fails", {"type": "object"}, explode, service="Broken")
    registry.calls = calls
    return registry
