"""
Unit tests for PromptBuilder
"""

from datetime import datetime

import pytest

from devcrew.runtime.agent_config import AgentConfig
from devcrew.runtime.prompt_builder import (
    DEFAULT_SYSTEM_PROMPT,
    NEW_SESSION_CONTEXT,
    PromptBuilder,
    format_message_history,
    truncate_text,
)
from devcrew.runtime.session_store import SessionStore
from devcrew.runtime.types import Message


def _msg(content="control console app", sender="User", session_id=None, at=None) -> Message:
    metadata = {"SessionId": session_id} if session_id else {}
    kwargs = {"timestamp": at} if at else {}
    return Message(sender=sender, recipient="Analyst", content=content, metadata=metadata, **kwargs)


@pytest.fixture
def sessions():
    return SessionStore("Analyst")


def test_truncate_text():
    assert truncate_text("short", 10) == "short"
    assert truncate_text("x" * 12, 10) == "x" * 10 + "..."
    assert truncate_text("", 10) == ""


def test_format_message_history_truncates_and_limits():
    history = [
        _msg(content=f"m{i}", at=datetime(2025, 1, 4, 12, 0, i)) for i in range(35)
    ] + [_msg(content="y" * 200, sender="Designer", at=datetime(2025, 1, 4, 12, 1, 0))]

    lines = format_message_history(history).splitlines()

    assert len(lines) == 30
    assert lines[0] == "[12:00:06 User]: m6"
    assert lines[-1] == "[12:01:00 Designer]: " + "y" * 150 + "..."


def test_system_prompt_joined_or_default(sessions):
    config = AgentConfig(name="Analyst", system_prompt=["line one", "line two"])
    conversation = PromptBuilder(config, sessions).build(_msg())

    assert [m.role for m in conversation] == ["system", "user"]
    assert conversation[0].content == "line one\nline two"

    empty = PromptBuilder(AgentConfig(name="Analyst"), sessions).build(_msg())
    assert empty[0].content == DEFAULT_SYSTEM_PROMPT


def test_empty_template_uses_raw_content(sessions):
    conversation = PromptBuilder(AgentConfig(name="Analyst"), sessions).build(_msg("hello"))
    assert conversation[1].content == "hello"


def test_template_substitutes_exact_placeholders(sessions):
    config = AgentConfig(
        name="Analyst",
        prompt_template="id={session_id} input={user_input} keep={other} json={\"a\": 1}",
    )
    builder = PromptBuilder(config, sessions)

    assert builder.render_user_prompt(_msg("hi")) == 'id=new_session input=hi keep={other} json={"a": 1}'
    assert builder.render_user_prompt(_msg("hi", session_id="s1")).startswith("id=s1 ")


def test_placeholders_in_user_content_are_not_expanded(sessions):
    config = AgentConfig(name="Analyst", prompt_template="S={session_id}\nU={user_input}")
    builder = PromptBuilder(config, sessions)

    rendered = builder.render_user_prompt(_msg("rename {session_id} to id", session_id="S1"))

    assert rendered == "S=S1\nU=rename {session_id} to id"


def test_session_context_for_unknown_session(sessions):
    builder = PromptBuilder(AgentConfig(name="Analyst"), sessions)
    assert builder.session_context(_msg()) == NEW_SESSION_CONTEXT
    assert builder.session_context(_msg(session_id="missing")) == NEW_SESSION_CONTEXT


def test_session_context_for_known_session(sessions):
    message = _msg(at=datetime(2025, 1, 4, 12, 0, 0))
    session = sessions.get_or_create(message)
    sessions.update_state(session.session_id, {"ProjectType": "console"})
    sessions.mark_awaiting_confirmation(session.session_id)
    other = _msg("unrelated", session_id="other", at=datetime(2025, 1, 4, 12, 0, 5))
    reply = Message(
        sender="Analyst",
        recipient="User",
        content="Which language?",
        metadata={"SessionId": session.session_id},
        timestamp=datetime(2025, 1, 4, 12, 0, 10),
    )

    context = PromptBuilder(AgentConfig(name="Analyst"), sessions).session_context(
        message, [reply, message, other]
    )

    assert "=== Session ===" in context
    assert f"Session ID: {session.session_id}" in context
    assert "User: User" in context
    assert "Status: Active" in context
    assert "Awaiting confirmation: yes" in context
    assert "=== Session state ===\n  ProjectType: console" in context
    assert "=== Recent conversation ===" in context
    recent = context.split("=== Recent conversation ===\n")[1].splitlines()
    assert recent == [
        "[12:00:00] User: control console app",
        "[12:00:10] Analyst: Which language?",
    ]


def test_template_with_all_placeholders(sessions):
    config = AgentConfig(
        name="Analyst",
        prompt_template="{session_context}\n--\n{message_history}--\n{user_input}",
    )
    message = _msg("build it", at=datetime(2025, 1, 4, 9, 30, 0))

    prompt = PromptBuilder(config, sessions).render_user_prompt(message, [message])

    assert prompt == f"{NEW_SESSION_CONTEXT}\n--\n[09:30:00 User]: build it\n--\nbuild it"
