"""
Prompt/context rendering for configured agents.

Pure text assembly: the system prompt comes from the agent configuration,
the user prompt is the configured template with four exact-match
placeholders substituted.
"""

import re
from typing import Dict, List, Sequence

from .agent_config import AgentConfig
from .session_store import SessionStore
from .types import ChatMessage, Message


DEFAULT_SYSTEM_PROMPT = "You are an AI assistant."
NEW_SESSION_CONTEXT = "New session, no history."

HISTORY_LIMIT = 30
HISTORY_TRUNCATE_LENGTH = 150

# Single pass; placeholders inside substituted values are left as is
PLACEHOLDER_PATTERN = re.compile(r"\{(user_input|message_history|session_context|session_id)\}")


def truncate_text(text: str, max_length: int) -> str:
    if not text or len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def format_message_history(history: Sequence[Message], limit: int = HISTORY_LIMIT) -> str:
    """One ``[HH:MM:SS sender]: content`` line per message, content truncated."""
    lines = []
    for msg in list(history)[-limit:]:
        lines.append(
            f"[{msg.timestamp:%H:%M:%S} {msg.sender}]: "
            f"{truncate_text(msg.content, HISTORY_TRUNCATE_LENGTH)}"
        )
    return "\n".join(lines) + ("\n" if lines else "")


class PromptBuilder:
    """Renders a system + user conversation for one agent."""

    def __init__(self, config: AgentConfig, sessions: SessionStore):
        self._config = config
        self._sessions = sessions

    def build(self, message: Message, history: Sequence[Message] = ()) -> List[ChatMessage]:
        system = "\n".join(self._config.system_prompt) or DEFAULT_SYSTEM_PROMPT
        return [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=self.render_user_prompt(message, history)),
        ]

    def render_user_prompt(self, message: Message, history: Sequence[Message] = ()) -> str:
        template = self._config.prompt_template
        if not template:
            return message.content

        values: Dict[str, str] = {
            "user_input": message.content,
            "message_history": format_message_history(history),
            "session_context": self.session_context(message, history),
            "session_id": message.session_id or "new_session",
        }
        return PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], template)

    def session_context(self, message: Message, history: Sequence[Message] = ()) -> str:
        session_id = message.session_id
        session = self._sessions.get(session_id) if session_id else None
        if session is None:
            return NEW_SESSION_CONTEXT

        lines = [
            "=== Session ===",
            f"Session ID: {session.session_id}",
            f"User: {session.user_id}",
            f"Created: {session.created_time:%Y-%m-%d %H:%M:%S}",
            f"Last activity: {session.last_activity_time:%Y-%m-%d %H:%M:%S}",
            f"Status: {session.status.value}",
        ]
        if self._sessions.is_awaiting_confirmation(session_id):
            lines.append("Awaiting confirmation: yes")

        state = self._sessions.state(session_id)
        if state:
            lines.append("")
            lines.append("=== Session state ===")
            for key, value in state.items():
                lines.append(f"  {key}: {value}")

        session_messages = sorted(
            (m for m in history if m.session_id == session_id),
            key=lambda m: m.timestamp,
        )[-HISTORY_LIMIT:]
        if session_messages:
            lines.append("")
            lines.append("=== Recent conversation ===")
            for msg in session_messages:
                lines.append(f"[{msg.timestamp:%H:%M:%S}] {msg.sender}: {msg.content}")

        return "\n".join(lines) + "\n"
