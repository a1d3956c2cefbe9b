"""
Project CLI
===========

Register projects and their stacks so ``run --project-id`` picks the stack
up without repeating ``--stack``.

Usage:
    python -m crewforge project create "Shop" --id shop --stack frontend=React+Vite --stack backend=FastAPI
    python -m crewforge project list
    python -m crewforge project set-stack shop --stack database=PostgreSQL
    python -m crewforge project delete shop
"""

import argparse
import asyncio
from typing import Awaitable, Callable, TypeVar

from crewforge.cli.task_cli import parse_stack
from crewforge.config import CrewForgeConfig
from crewforge.db import init_db
from crewforge.errors import PersistenceError
from crewforge.output import console, create_table, print_error, print_muted, print_success, print_warning
from crewforge.projects import ProjectStore, stack_from_record
from crewforge.stacks import format_stack_summary

T = TypeVar("T")


def _with_store(action: Callable[[ProjectStore], Awaitable[T]]) -> T:
    """Open the configured database, run one store action, close it."""
    config = CrewForgeConfig.load()

    async def _run() -> T:
        database = await init_db(config.resolve_db_path())
        try:
            return await action(ProjectStore(database))
        finally:
            await database.dispose()

    return asyncio.run(_run())


def cmd_create(args: argparse.Namespace) -> int:
    try:
        stack = parse_stack(args.stack)
    except ValueError as e:
        print_error(str(e))
        return 2
    try:
        project = _with_store(lambda store: store.create_project(
            args.name, project_id=args.id, description=args.description, stack=stack,
        ))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    print_success(f"Created project {project.id} ({format_stack_summary(stack)})")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List projects, newest first."""
    try:
        projects = _with_store(lambda store: store.list_projects())
    except PersistenceError as e:
        print_error(str(e))
        return 1

    if not projects:
        print_muted("No projects registered")
        return 0

    table = create_table(title=f"Projects ({len(projects)})", columns=["ID", "Name", "Stack"])
    for project in projects:
        table.add_row(project.id, project.name, format_stack_summary(stack_from_record(project)))
    console.print(table)
    return 0


def cmd_set_stack(args: argparse.Namespace) -> int:
    """Merge stack categories into a project's stored stack."""
    try:
        stack = parse_stack(args.stack)
    except ValueError as e:
        print_error(str(e))
        return 2
    if stack is None:
        print_error("set-stack needs at least one --stack entry")
        return 2
    try:
        merged = _with_store(lambda store: store.update_stack(args.project_id, stack))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    if merged is None:
        print_warning(f"Project {args.project_id} not found")
        return 1
    print_success(f"{args.project_id}: {format_stack_summary(merged)}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    try:
        found = _with_store(lambda store: store.delete_project(args.project_id))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    if not found:
        print_warning(f"Project {args.project_id} not found")
        return 1
    print_success(f"Project {args.project_id} deleted")
    return 0


def add_project_parser(subparsers: argparse._SubParsersAction) -> None:
    project_parser = subparsers.add_parser("project", help="Register projects and their stacks")
    project_sub = project_parser.add_subparsers(dest="project_command", help="Project command")

    create_parser = project_sub.add_parser("create", help="Register a project")
    create_parser.add_argument("name", type=str, help="Project name")
    create_parser.add_argument("--id", type=str, default=None, help="Project id (default: generated)")
    create_parser.add_argument("--description", type=str, default=None)
    create_parser.add_argument("--stack", action="append", metavar="CATEGORY=CHOICE", help="Stack entry, repeatable")
    create_parser.set_defaults(handler=cmd_create)

    list_parser = project_sub.add_parser("list", help="List projects")
    list_parser.set_defaults(handler=cmd_list)

    stack_parser = project_sub.add_parser("set-stack", help="Update a project's stack")
    stack_parser.add_argument("project_id", type=str, help="Project id")
    stack_parser.add_argument("--stack", action="append", metavar="CATEGORY=CHOICE", help="Stack entry, repeatable")
    stack_parser.set_defaults(handler=cmd_set_stack)

    delete_parser = project_sub.add_parser("delete", help="Delete a project")
    delete_parser.add_argument("project_id", type=str, help="Project id")
    delete_parser.set_defaults(handler=cmd_delete)

    project_parser.set_defaults(handler=None, help_parser=project_parser)
