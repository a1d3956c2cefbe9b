"""
Compose CLI
===========

Usage:
    python -m crewforge compose api shop/api:1.2 --port 8000:8000 --env DEBUG=0 --volume ./data:/data
    python -m crewforge compose web nginx:latest --port 80:80 -o docker-compose.yml
"""

import argparse
from pathlib import Path
from typing import Dict, List, Optional

from crewforge.output import console, print_error, print_success
from crewforge.tools.docker import generate_compose_file


def parse_env(pairs: Optional[List[str]]) -> Dict[str, str]:
    environment: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid --env entry {pair!r}, expected KEY=VALUE")
        environment[key.strip()] = value
    return environment


def cmd_compose(args: argparse.Namespace) -> int:
    """Render a single-service docker-compose.yml."""
    try:
        environment = parse_env(args.env)
    except ValueError as e:
        print_error(str(e))
        return 2

    content = generate_compose_file(
        args.service,
        args.image,
        ports=args.port or (),
        environment=environment,
        volumes=args.volume or (),
    )
    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        print_success(f"Wrote {args.output}")
    else:
        console.print(content, markup=False, highlight=False, end="")
    return 0


def add_compose_parser(subparsers: argparse._SubParsersAction) -> None:
    compose_parser = subparsers.add_parser("compose", help="Generate a docker-compose.yml for one service")
    compose_parser.add_argument("service", type=str, help="Service name")
    compose_parser.add_argument("image", type=str, help="Image, e.g. nginx:latest")
    compose_parser.add_argument("--port", action="append", metavar="HOST:CONTAINER", help="Port mapping, repeatable")
    compose_parser.add_argument("--env", action="append", metavar="KEY=VALUE", help="Environment entry, repeatable")
    compose_parser.add_argument("--volume", action="append", metavar="SRC:DEST", help="Volume mapping, repeatable")
    compose_parser.add_argument("-o", "--output", type=str, default=None, help="Write to a file instead of stdout")
    compose_parser.set_defaults(handler=cmd_compose)
