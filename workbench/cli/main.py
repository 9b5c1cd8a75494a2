"""Main entry point for the Workbench CLI."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

from workbench import __version__
from workbench.cli import auth, commands
from workbench.cli.repl import Repl
from workbench.config import Config, settings
from workbench.services.jobs import EXPORT_EXTENSIONS

COMMANDS = {
    "login",
    "register",
    "logout",
    "whoami",
    "code",
    "scrape",
    "research",
    "extract",
    "instructions",
    "batch",
}

# Commands that take the rest of the positional arguments
POSITIONAL_COMMANDS = {"code", "scrape", "research", "extract", "batch"}

EXPLAIN_LEVELS = ("beginner", "intermediate", "advanced")


def print_help():
    """Print help message."""
    print(f"""
Workbench CLI v{__version__}

Usage:
  workbench [options] [command] [args]

Commands:
  login [--email E]             Log in with email and password
  register [--email E] [--name N]
                                Create an account
  logout [--all]                Clear stored credentials
  whoami                        Show the logged-in account
  code generate DESCRIPTION     Generate code from a description
  code review FILE [--focus F]  Review the code in FILE
  code explain FILE [--level L] Explain the code in FILE (beginner|intermediate|advanced)
  code fix FILE --error E       Fix the code in FILE given an error message
  scrape URL                    Scrape a web page
  research QUERY [--url U]... [--file F]
                                Research a topic from URLs and/or a document
  extract FILE [--instruction I [--preview]] [--export FMT] [--out DIR]
                                Extract structured data from a document,
                                optionally transform and export it
                                (FMT: csv, json, excel, xml, html)
  instructions                  Show example extraction instructions
  batch FILE... [--name N]      Process several files as one batch

Options:
  --api-url URL     Override API endpoint (default: http://localhost:8000/api/v1)
  --conversation ID Start REPL in a specific conversation
  --language L      Language for code commands (default: python)
  --verbose         Log debug output to stderr
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  WORKBENCH_API_URL     Override API endpoint (same as --api-url)
  WORKBENCH_CONFIG_DIR  Where credentials are stored (default: ~/.workbench)
  WORKBENCH_LOG_LEVEL   Log level when --verbose is not given (default: WARNING)

With no command, starts the chat REPL (type /help inside it).
""")


def _usage_error(message: str):
    print(f"Error: {message}")
    print("Run 'workbench --help' for usage.")
    sys.exit(1)


def _check_code_args(result: dict):
    positionals = result["positionals"]
    if not positionals or positionals[0] not in commands.CODE_ACTIONS:
        _usage_error(f"code needs an action: {', '.join(commands.CODE_ACTIONS)}")
    action = positionals[0]
    if len(positionals) < 2:
        _usage_error(f"code {action} needs an argument")
    if action != "generate" and len(positionals) != 2:
        _usage_error(f"code {action} takes exactly one file")
    if action == "fix" and not result["error"]:
        _usage_error("code fix requires --error")
    if result["level"] and result["level"] not in EXPLAIN_LEVELS:
        _usage_error(f"--level must be one of: {', '.join(EXPLAIN_LEVELS)}")


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (None for REPL)
        positionals: list[str]
        api_url, conversation_id, email, name: str | None
        language: str
        focus, level, error, file, instruction, export, out: str | None
        urls: list[str]
        logout_all, preview, verbose, show_help, show_version: bool
    """
    result = {
        "command": None,
        "positionals": [],
        "api_url": None,
        "conversation_id": None,
        "email": None,
        "name": None,
        "language": "python",
        "focus": None,
        "level": None,
        "error": None,
        "file": None,
        "instruction": None,
        "export": None,
        "out": None,
        "urls": [],
        "logout_all": False,
        "preview": False,
        "verbose": False,
        "show_help": False,
        "show_version": False,
    }

    value_options = {
        "--api-url": "api_url",
        "--conversation": "conversation_id",
        "--email": "email",
        "--name": "name",
        "--language": "language",
        "--focus": "focus",
        "--level": "level",
        "--error": "error",
        "--file": "file",
        "--instruction": "instruction",
        "--export": "export",
        "--out": "out",
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in value_options:
            if i + 1 >= len(args):
                _usage_error(f"{arg} requires a value")
            result[value_options[arg]] = args[i + 1]
            i += 1
        elif arg == "--url":
            if i + 1 >= len(args):
                _usage_error("--url requires a URL")
            result["urls"].append(args[i + 1])
            i += 1
        elif arg == "--all":
            result["logout_all"] = True
        elif arg == "--preview":
            result["preview"] = True
        elif arg == "--verbose":
            result["verbose"] = True
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            _usage_error(f"Unknown option: {arg}")
        elif result["command"] is None and arg in COMMANDS:
            result["command"] = arg
        elif result["command"] in POSITIONAL_COMMANDS:
            result["positionals"].append(arg)
        elif result["command"] is None:
            _usage_error(f"Unknown command: {arg}")
        else:
            _usage_error(f"Unexpected argument: {arg}")

        i += 1

    command = result["command"]
    if command in ("scrape", "extract") and len(result["positionals"]) != 1:
        _usage_error(f"{command} takes exactly one argument")
    if command in ("research", "batch") and not result["positionals"]:
        _usage_error(f"{command} needs at least one argument")
    if command == "code":
        _check_code_args(result)
    if result["preview"] and not result["instruction"]:
        _usage_error("--preview requires --instruction")
    if result["export"] and result["export"] not in EXPORT_EXTENSIONS:
        _usage_error(f"--export must be one of: {', '.join(EXPORT_EXTENSIONS)}")

    return result


def configure_logging(verbose: bool):
    """Log to stderr only. Stdout belongs to the REPL."""
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def run_command(config: Config, args: dict) -> bool:
    """Run a non-REPL command. Returns True on success."""
    command = args["command"]
    positionals = args["positionals"]

    if command == "login":
        return asyncio.run(auth.login(config, email=args["email"]))
    if command == "register":
        return asyncio.run(auth.register(config, email=args["email"], name=args["name"]))
    if command == "logout":
        return auth.logout(config, logout_all=args["logout_all"])
    if command == "whoami":
        return asyncio.run(auth.whoami(config))

    if not config.is_authenticated:
        print(f"Not authenticated to {config.api_url}")
        print("Run 'workbench login' first.")
        return False

    if command == "code":
        action = positionals[0]
        source = " ".join(positionals[1:]) if action == "generate" else positionals[1]
        return asyncio.run(
            commands.code(
                config,
                action,
                source,
                language=args["language"],
                focus=args["focus"],
                level=args["level"],
                error=args["error"],
            )
        )
    if command == "scrape":
        return asyncio.run(commands.scrape(config, positionals[0]))
    if command == "research":
        return asyncio.run(
            commands.research(config, " ".join(positionals), args["urls"], file_path=args["file"])
        )
    if command == "extract":
        return asyncio.run(
            commands.extract(
                config,
                positionals[0],
                instruction=args["instruction"],
                preview=args["preview"],
                export_format=args["export"],
                directory=Path(args["out"]) if args["out"] else None,
            )
        )
    if command == "instructions":
        return asyncio.run(commands.instructions(config))
    if command == "batch":
        return asyncio.run(commands.batch(config, positionals, args["name"]))

    raise ValueError(f"Unhandled command: {command}")


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_help"]:
        print_help()
        return

    if args["show_version"]:
        print(f"workbench {__version__}")
        return

    configure_logging(args["verbose"])
    config = Config(api_url_override=args["api_url"])

    if args["command"]:
        success = run_command(config, args)
        sys.exit(0 if success else 1)

    if not config.is_authenticated:
        print(f"Not authenticated to {config.api_url}")
        print("Run 'workbench login' first.")
        sys.exit(1)

    Repl(config, conversation_id=args["conversation_id"]).start()


if __name__ == "__main__":
    main()
