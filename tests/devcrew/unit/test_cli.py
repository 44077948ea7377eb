"""
Unit tests for the console entry point
"""

import asyncio

import pytest

from devcrew import cli
from devcrew.runtime.types import Message


def test_build_parser():
    args = cli.build_parser().parse_args(["--agents-dir", "a", "--log-level", "DEBUG"])
    assert args.agents_dir == "a"
    assert args.log_level == "DEBUG"
    assert args.project_root is None


def test_main_exits_on_configuration_error(monkeypatch, tmp_path, capsys):
    for name in ("DEVCREW_API_KEY", "DEEPSEEK_API_KEY"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    env_file = tmp_path / ".env"
    env_file.write_text("", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        cli.main(["--env-file", str(env_file)])

    assert exc.value.code == 1
    assert "Configuration error" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_print_replies_tracks_open_session(bus, capsys):
    replies = bus.subscribe("User")
    conversation = {"session_id": None, "agent": None}
    printer = asyncio.create_task(cli._print_replies(replies, conversation))

    await bus.publish(Message(
        sender="Analyst", recipient="User", content="Which language?",
        metadata={"SessionId": "s1", "AwaitingConfirmation": True},
    ))
    await asyncio.sleep(0)
    assert conversation == {"session_id": "s1", "agent": "Analyst"}

    await bus.publish(Message(sender="Analyst", recipient="User", content="Forwarded", metadata={"SessionId": "s1"}))
    replies.close()
    await printer

    assert conversation == {"session_id": None, "agent": None}
    assert "[Analyst] Which language?" in capsys.readouterr().out
