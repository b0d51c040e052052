#!/usr/bin/env python3
"""
enigma: ask Perplexity from the command line.

Usage:
    enigma <question...>           one-shot question
    enigma                         interactive mode
    enigma ask <question...>       one-shot, question required
    enigma config [--key K] [--save]

Interactive commands:
    exit / quit  leave the session
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

from . import __version__
from .api_client import ask, ask_streaming
from .config import EnigmaConfig, load_config, save_config, validate_api_key_format
from .errors import EnigmaError, classify
from .payload import AskOptions

log = logging.getLogger("enigma.main")

BANNER = r"""
   ___  ___  (_)__ ___ _  ___ _
  / -_)/ _ \/ / _ `/  ' \/ _ `/
  \__//_//_/_/\_, /_/_/_/\_,_/
             /___/  Perplexity CLI
"""

EXIT_COMMANDS = ("exit", "quit")

GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
RED = "\033[91m"
RESET = "\033[0m"


# ----------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------

def render_answer(question: str, answer: str, fmt: str) -> str:
    if fmt == "json":
        return json.dumps({"question": question, "answer": answer}, indent=2, ensure_ascii=False)
    if fmt == "plain":
        return answer
    return f"\n{GREEN}=== Perplexity ==={RESET}\n\n{answer}\n"


def _masked(config: EnigmaConfig) -> dict:
    data = config.to_dict()
    key = data["api"]["key"]
    if key:
        data["api"]["key"] = key[:5] + "****" + key[-4:] if len(key) > 12 else "****"
    return data


# ----------------------------------------------------------------------
# Asking
# ----------------------------------------------------------------------

def handle_question(question: str, config: EnigmaConfig, options: AskOptions) -> int:
    """Ask one question and print the answer. Returns a process exit code."""
    streaming = options.stream if options.stream is not None else config.output.stream
    if streaming and config.output.format == "json":
        log.info("Streaming is not available with json output. Falling back to a single response.")
        streaming = False

    try:
        if streaming:
            if config.output.format == "markdown":
                print(f"\n{GREEN}=== Perplexity ==={RESET}\n")

            def _write(fragment: str) -> None:
                sys.stdout.write(fragment)
                sys.stdout.flush()

            ask_streaming(question, config, options, _write)
            sys.stdout.write("\n")
            sys.stdout.flush()
        else:
            answer = ask(question, config, options)
            print(render_answer(question, answer, config.output.format))
    except EnigmaError as exc:
        print(f"{RED}{classify(exc)}{RESET}", file=sys.stderr)
        return 1
    return 0


def interactive_session(
    config: EnigmaConfig,
    options: AskOptions,
    prompt: Callable[[str], str] = input,
    ask_fn: Callable[[str, EnigmaConfig, AskOptions], int] = handle_question,
) -> None:
    """Read-eval loop. A failed question does not end the session."""
    while True:
        try:
            question = prompt(f"{CYAN}?{RESET} ").strip()
        except EOFError:
            break

        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            break

        ask_fn(question, config, options)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

def _config_command(config: EnigmaConfig, args: argparse.Namespace) -> int:
    if args.key is not None:
        check = validate_api_key_format(args.key)
        if not check.valid:
            print(f"{RED}{check.message}{RESET}", file=sys.stderr)
            return 1
        config = dataclasses.replace(
            config, api=dataclasses.replace(config.api, key=args.key.strip())
        )

    print(f"\n{CYAN}Resolved configuration:{RESET}")
    print(json.dumps(_masked(config), indent=2))

    if args.save:
        path = save_config(config)
        print(f"{GREEN}Configuration written to {path}{RESET}")
    return 0


def _add_ask_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-m", "--model", help="Model to use")
    parser.add_argument("-s", "--search-mode", help="Search mode: low | medium | high")
    parser.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stream the answer as it is generated",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def _build_parser(command: str | None) -> argparse.ArgumentParser:
    if command == "config":
        parser = argparse.ArgumentParser(
            prog="enigma config",
            description="Show the resolved configuration and write it back if needed",
        )
        parser.add_argument("--key", help="Set the API key (format is validated)")
        parser.add_argument("--save", action="store_true", help="Persist to .pplxrc")
        parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
        return parser

    if command == "ask":
        parser = argparse.ArgumentParser(
            prog="enigma ask",
            description="Ask Perplexity a question without entering interactive mode",
        )
        parser.add_argument("question", nargs="+", help="Question to ask")
    else:
        parser = argparse.ArgumentParser(
            prog="enigma",
            description="Perplexity - Enigma CLI",
            epilog="Subcommands: ask, config",
        )
        parser.add_argument(
            "question", nargs="*", help="Ask a question (interactive mode if omitted)"
        )
        parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_ask_options(parser)
    return parser


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    command = argv[0] if argv and argv[0] in ("ask", "config") else None
    args = _build_parser(command).parse_args(argv[1:] if command else argv)

    load_dotenv(Path.cwd() / ".env")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    config = load_config()
    if config.output.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if command == "config":
        return _config_command(config, args)

    options = AskOptions.from_cli(
        model=args.model, search_mode=args.search_mode, stream=args.stream
    )
    question = " ".join(args.question).strip()
    if question:
        return handle_question(question, config, options)
    if command == "ask":
        print(f"{YELLOW}No question provided. Exiting.{RESET}", file=sys.stderr)
        return 1

    print(BANNER)
    print("Type exit or quit to leave.\n")
    try:
        interactive_session(config, options)
    except KeyboardInterrupt:
        print("\n\nInterrupted.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
