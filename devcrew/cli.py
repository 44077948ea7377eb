#!/usr/bin/env python3
"""
devcrew CLI

Interactive console: every line typed is sent to the entry agent, and every
message addressed to the user is printed as it arrives.
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

from .config import RuntimeConfig
from .runtime.agent_config import AgentConfigError
from .runtime.message_bus import Subscription
from .runtime.runtime import Runtime, create_runtime
from .utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="devcrew multi-agent console")
    parser.add_argument("--agents-dir", help="Directory of agent JSON files")
    parser.add_argument("--project-root", help="Directory generated files are written to")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--env-file", help="Path of a .env file to load")
    return parser


async def _print_replies(replies: Subscription, conversation: Dict[str, Any]) -> None:
    async for message in replies:
        print(f"\n[{message.sender}] {message.content}\n")
        if message.metadata.get("AwaitingConfirmation"):
            conversation["session_id"] = message.session_id
            conversation["agent"] = message.sender
        else:
            conversation["session_id"] = None
            conversation["agent"] = None


async def run_console(runtime: Runtime) -> None:
    replies = runtime.user_messages()
    conversation: Dict[str, Optional[str]] = {"session_id": None, "agent": None}
    printer = asyncio.create_task(_print_replies(replies, conversation))

    await runtime.start()
    entry = runtime.entry_agent
    print(f"devcrew ready. Talking to {entry.name if entry else '-'}; type 'exit' to quit.")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.lower() in EXIT_COMMANDS:
                break
            await runtime.submit(line, session_id=conversation["session_id"], recipient=conversation["agent"])
    finally:
        await runtime.shutdown()
        await printer


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        config = RuntimeConfig.from_env(args.env_file)
        if args.agents_dir:
            config.agents_dir = args.agents_dir
        if args.project_root:
            config.project_root = args.project_root
        if args.log_level:
            config.log_level = args.log_level
        config.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(log_level=config.log_level, log_dir=config.log_dir, force=True)

    async def _run() -> None:
        runtime = await create_runtime(config)
        await run_console(runtime)

    try:
        asyncio.run(_run())
    except AgentConfigError as e:
        print(f"Agent configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
