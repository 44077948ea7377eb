"""
Agent configuration files.

One JSON file per agent:

    {
      "name": "Analyst",
      "is_first": true,
      "description": "Turns a loose request into a requirement document",
      "system_prompt": ["You are a requirements analyst."],
      "prompt_template": "{session_context}\\n\\n{message_history}\\n\\nUser: {user_input}",
      "allowed_senders": ["User"],
      "response_handlers": {
        "ASK_USER:": [{"target": "User", "session": "continue"}],
        "ROUTE_TO_AGENT:Designer": [{"target": "Designer", "session": "clear"}]
      },
      "tool_api_service": ["FileRead"],
      "tools": ["FileRead"]
    }

The handler table is resolved once at load time into ordered, typed
``ResponseHandler`` entries; declaration order is the match order.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .types import MessageType, SessionAction, USER


DEFAULT_CONFIRMATION_MARKERS = ("please confirm", "请确认", "请问", "是否")


class AgentConfigError(ValueError):
    """Malformed or missing agent configuration."""


@dataclass(frozen=True)
class RouteTarget:
    target: str
    session_action: SessionAction

    @property
    def is_user(self) -> bool:
        return self.target.lower() == USER.lower()


@dataclass(frozen=True)
class ResponseHandler:
    instruction: str
    targets: Tuple[RouteTarget, ...]

    def user_target(self) -> Optional[RouteTarget]:
        for target in self.targets:
            if target.is_user:
                return target
        return None


@dataclass
class AgentConfig:
    """Declarative definition of one agent"""

    name: str
    description: str = ""
    is_first: bool = False
    system_prompt: List[str] = field(default_factory=list)
    prompt_template: str = ""
    allowed_senders: List[str] = field(default_factory=list)
    response_handlers: Tuple[ResponseHandler, ...] = ()
    tool_api_services: List[str] = field(default_factory=list)
    tools: List[str] = field(default_factory=list)

    # Runtime behaviour
    single_flight: bool = False
    accepted_message_types: Tuple[MessageType, ...] = (MessageType.TASK_REQUEST,)
    max_iterations: Optional[int] = None
    confirmation_markers: Tuple[str, ...] = DEFAULT_CONFIRMATION_MARKERS
    # Recipient of folder_refresh / help_request outcomes instead of the sender
    report_to: Optional[str] = None

    def allows_sender(self, sender: str) -> bool:
        """An empty allowlist accepts everyone."""
        return not self.allowed_senders or sender in self.allowed_senders

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_name: Optional[str] = None) -> "AgentConfig":
        if not isinstance(data, dict):
            raise AgentConfigError("Agent configuration must be a JSON object")

        name = data.get("name") or default_name
        if not name or not isinstance(name, str):
            raise AgentConfigError("Agent configuration requires a 'name'")

        system_prompt = data.get("system_prompt", [])
        if system_prompt is None:
            system_prompt = []
        if isinstance(system_prompt, str):
            system_prompt = [system_prompt]
        if not isinstance(system_prompt, list):
            raise AgentConfigError(f"{name}: 'system_prompt' must be a list of strings")

        report_to = data.get("report_to")
        if report_to is not None and (not isinstance(report_to, str) or not report_to):
            raise AgentConfigError(f"{name}: 'report_to' must be an agent name")

        max_iterations = data.get("max_iterations")
        if max_iterations is not None and (not isinstance(max_iterations, int) or max_iterations < 1):
            raise AgentConfigError(f"{name}: 'max_iterations' must be a positive integer")

        markers = data.get("confirmation_markers")
        if markers is None:
            markers = DEFAULT_CONFIRMATION_MARKERS
        elif not isinstance(markers, list):
            raise AgentConfigError(f"{name}: 'confirmation_markers' must be a list of strings")

        return cls(
            name=name,
            description=data.get("description") or "",
            is_first=bool(data.get("is_first", False)),
            system_prompt=[str(line) for line in system_prompt],
            prompt_template=data.get("prompt_template") or "",
            allowed_senders=_string_list(data, "allowed_senders", name),
            response_handlers=_parse_handlers(data.get("response_handlers"), name),
            tool_api_services=_string_list(data, "tool_api_service", name),
            tools=_string_list(data, "tools", name),
            single_flight=bool(data.get("single_flight", False)),
            accepted_message_types=_parse_message_types(data.get("accepted_message_types"), name),
            max_iterations=max_iterations,
            confirmation_markers=tuple(str(m) for m in markers),
            report_to=report_to,
        )

    @classmethod
    def load(cls, path: str) -> "AgentConfig":
        """Load and validate an agent configuration file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise AgentConfigError(f"Agent config not found: {path}") from e
        except json.JSONDecodeError as e:
            raise AgentConfigError(f"Invalid JSON in agent config {path}: {e}") from e

        default_name = os.path.splitext(os.path.basename(path))[0]
        return cls.from_dict(data, default_name=default_name)


def _string_list(data: Dict[str, Any], key: str, agent: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise AgentConfigError(f"{agent}: '{key}' must be a list of strings")
    return list(value)


def _parse_handlers(raw: Any, agent: str) -> Tuple[ResponseHandler, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, dict):
        raise AgentConfigError(f"{agent}: 'response_handlers' must be an object")

    handlers = []
    for instruction, targets in raw.items():
        if not instruction:
            raise AgentConfigError(f"{agent}: empty response handler instruction")
        if not isinstance(targets, list):
            raise AgentConfigError(f"{agent}: handler '{instruction}' must map to a list")

        parsed = []
        for entry in targets:
            if not isinstance(entry, dict) or not entry.get("target"):
                raise AgentConfigError(f"{agent}: handler '{instruction}' has a target without 'target'")
            action = str(entry.get("session", SessionAction.CONTINUE.value)).lower()
            try:
                session_action = SessionAction(action)
            except ValueError:
                raise AgentConfigError(
                    f"{agent}: handler '{instruction}' has unknown session action '{action}'"
                ) from None
            parsed.append(RouteTarget(target=entry["target"], session_action=session_action))

        handlers.append(ResponseHandler(instruction=instruction, targets=tuple(parsed)))
    return tuple(handlers)


def _parse_message_types(raw: Any, agent: str) -> Tuple[MessageType, ...]:
    if raw is None:
        return (MessageType.TASK_REQUEST,)
    if not isinstance(raw, list):
        raise AgentConfigError(f"{agent}: 'accepted_message_types' must be a list")
    try:
        return tuple(MessageType(str(v).lower()) for v in raw)
    except ValueError as e:
        raise AgentConfigError(f"{agent}: {e}") from None
