#!/usr/bin/env python3
"""
dialtone CLI: talk to the responses API from a terminal.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    ask             send            One-shot question, streamed by default
    chat            repl, talk      Interactive conversation with memory
    config          show            Print the effective configuration

Configuration comes from --config PATH, or the first dialtone.yaml /
dialtone.yml / dialtone.plist found in the working directory or
~/.config/dialtone.
"""

import argparse
import asyncio
import json
import logging
import sys

from dialtone import __version__
from dialtone.client import ResponsesClient
from dialtone.config import ClientConfig, find_config, load_config
from dialtone.errors import DialtoneError

logger = logging.getLogger(__name__)

CHAT_HELP = "  /clear  forget the conversation   /history  show it   /quit  leave"


def _load(args) -> ClientConfig:
    if args.config:
        return load_config(args.config)
    return find_config()


async def _reply(client: ResponsesClient, text: str, instructions, stream: bool) -> None:
    if not stream:
        print(await client.send(text, instructions))
        return
    async for delta in client.stream(text, instructions):
        print(delta, end="", flush=True)
    print()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_ask(args):
    """One-shot question."""
    client = ResponsesClient(_load(args))
    asyncio.run(_reply(client, " ".join(args.text), args.instructions, not args.no_stream))


def cmd_chat(args):
    """Interactive conversation until /quit or EOF."""
    client = ResponsesClient(_load(args))
    cfg = client.configuration
    print(f"  Model: {cfg.model}")
    print(f"  Endpoint: {cfg.endpoint}")
    print(CHAT_HELP)
    print()

    async def loop():
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                print()
                return
            text = line.strip()
            if not text:
                continue
            if text in ("/quit", "/exit"):
                return
            if text == "/clear":
                client.clear_history()
                print("  (history cleared)")
                continue
            if text == "/history":
                for m in client.conversation_history():
                    print(f"  [{m.role.value}] {m.content}")
                continue

            print("ai> ", end="", flush=True)
            try:
                await _reply(client, text, args.instructions, stream=True)
            except DialtoneError as e:
                print()
                print(f"  ✗  {e.description}", file=sys.stderr)

    try:
        asyncio.run(loop())
    except KeyboardInterrupt:
        print()


def cmd_config(args):
    """Print the effective configuration, API key masked."""
    print(json.dumps(_load(args).masked(), indent=2))


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under its name and aliases."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    p.add_argument("--config", "-c", default=None, help="Path to a .yaml/.yml/.plist config file")
    if setup_fn:
        setup_fn(p)
    return p


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="dialtone",
        description="dialtone: conversational client for the responses API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"dialtone {__version__}",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_ask(p):
        p.add_argument("text", nargs="+", help="Question to ask")
        p.add_argument("--instructions", "-i", default=None, help="Extra instructions for this call")
        p.add_argument("--no-stream", action="store_true", help="Wait for the whole reply")

    _add_command(sub, ["ask", "send"], "Ask a single question", cmd_ask, setup_ask)

    def setup_chat(p):
        p.add_argument("--instructions", "-i", default=None, help="Extra instructions for every turn")

    _add_command(sub, ["chat", "repl", "talk"], "Start an interactive conversation", cmd_chat, setup_chat)

    _add_command(sub, ["config", "show"], "Show the effective configuration", cmd_config)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        args.func(args)
    except DialtoneError as e:
        print(f"  ✗  {e.description}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
