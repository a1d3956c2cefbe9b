"""
Memory CLI
==========

Inspect and curate what the role handlers remember.

Usage:
    python -m crewforge memory list --role backend --project-id shop
    python -m crewforge memory promote 42 --importance 90
    python -m crewforge memory forget 42
    python -m crewforge memory clear --role qa
"""

import argparse
import asyncio
from typing import Awaitable, Callable, TypeVar

from crewforge.config import CrewForgeConfig
from crewforge.db import init_db
from crewforge.errors import PersistenceError
from crewforge.memory import MemoryStore, MemoryType, format_age
from crewforge.output import console, create_table, print_error, print_muted, print_success, print_warning

T = TypeVar("T")


def _with_store(action: Callable[[MemoryStore], Awaitable[T]]) -> T:
    """Open the configured database, run one store action, close it."""
    config = CrewForgeConfig.load()

    async def _run() -> T:
        database = await init_db(config.resolve_db_path())
        try:
            return await action(MemoryStore(database, short_term_cap=config.short_term_cap))
        finally:
            await database.dispose()

    return asyncio.run(_run())


def cmd_list(args: argparse.Namespace) -> int:
    """List memories, newest first."""
    try:
        memories = _with_store(lambda store: store.list_memories(
            args.role, args.project_id, args.type, args.limit,
        ))
    except PersistenceError as e:
        print_error(str(e))
        return 1

    if not memories:
        print_muted("No memories match the criteria")
        return 0

    table = create_table(
        title=f"Memories ({len(memories)} shown)",
        columns=["ID", "Role", "Type", "Imp.", "Project", "Age", "Content"],
    )
    for memory in memories:
        table.add_row(
            str(memory.id),
            memory.agent_role,
            memory.memory_type,
            str(memory.importance),
            memory.project_id or "-",
            format_age(memory.created_at),
            memory.content[:100] + ("..." if len(memory.content) > 100 else ""),
        )
    console.print(table)
    return 0


def cmd_promote(args: argparse.Namespace) -> int:
    """Promote a short-term note to a permanent lesson."""
    try:
        found = _with_store(lambda store: store.promote_to_lesson(args.memory_id, args.importance))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    if not found:
        print_warning(f"Memory {args.memory_id} not found")
        return 1
    print_success(f"Memory {args.memory_id} promoted to lesson (importance {args.importance})")
    return 0


def cmd_forget(args: argparse.Namespace) -> int:
    """Delete one memory."""
    try:
        found = _with_store(lambda store: store.forget(args.memory_id))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    if not found:
        print_warning(f"Memory {args.memory_id} not found")
        return 1
    print_success(f"Memory {args.memory_id} deleted")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Delete every memory for a role and/or project."""
    if not args.role and not args.project_id:
        print_error("clear needs --role or --project-id")
        return 2
    try:
        count = _with_store(lambda store: store.forget_all(args.role, args.project_id))
    except PersistenceError as e:
        print_error(str(e))
        return 1
    print_success(f"Deleted {count} memories")
    return 0


def add_memory_parser(subparsers: argparse._SubParsersAction) -> None:
    memory_parser = subparsers.add_parser("memory", help="Inspect and curate agent memories")
    memory_sub = memory_parser.add_subparsers(dest="memory_command", help="Memory command")

    list_parser = memory_sub.add_parser("list", help="List memories")
    list_parser.add_argument("--role", type=str, default=None, help="Filter by role")
    list_parser.add_argument("--project-id", type=str, default=None, help="Filter by project")
    list_parser.add_argument("--type", choices=[t.value for t in MemoryType], default=None)
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum memories to show (default: 50)")
    list_parser.set_defaults(handler=cmd_list)

    promote_parser = memory_sub.add_parser("promote", help="Promote a memory to a lesson")
    promote_parser.add_argument("memory_id", type=int, help="Memory id")
    promote_parser.add_argument("--importance", type=int, default=100, help="Importance 0-100 (default: 100)")
    promote_parser.set_defaults(handler=cmd_promote)

    forget_parser = memory_sub.add_parser("forget", help="Delete one memory")
    forget_parser.add_argument("memory_id", type=int, help="Memory id")
    forget_parser.set_defaults(handler=cmd_forget)

    clear_parser = memory_sub.add_parser("clear", help="Delete memories for a role and/or project")
    clear_parser.add_argument("--role", type=str, default=None)
    clear_parser.add_argument("--project-id", type=str, default=None)
    clear_parser.set_defaults(handler=cmd_clear)

    memory_parser.set_defaults(handler=None, help_parser=memory_parser)
