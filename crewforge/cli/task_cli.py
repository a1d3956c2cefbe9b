"""
Task CLI
========

Usage:
    python -m crewforge run "Write login tests" --project-id shop --stack testing=Pytest
    python -m crewforge run "Deploy the API" --target prod-1 --json
    python -m crewforge check "rm -rf /"
    python -m crewforge model devops --provider DEEPSEEK --model deepseek-chat
"""

import argparse
import asyncio
from typing import Dict, List, Optional

from pydantic import ValidationError

from crewforge.activity import AgentActivity, set_agent_model_config
from crewforge.config import CrewForgeConfig
from crewforge.db import init_db
from crewforge.errors import TaskValidationError
from crewforge.models import TaskRequest
from crewforge.orchestrator import TaskOutcome, TaskStatus, build_orchestrator
from crewforge.output import (
    print_assessment,
    print_error,
    print_header,
    print_info,
    print_json_data,
    print_key_values,
    print_muted,
    print_plan,
    print_results,
    print_success,
    print_warning,
)
from crewforge.reasoning import ModelProvider
from crewforge.roles import ROLE_SPECS
from crewforge.security import validate
from crewforge.stacks import StackConfig, format_stack_summary

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_BLOCKED = 3


def parse_stack(pairs: Optional[List[str]]) -> Optional[StackConfig]:
    """Turn ``["frontend=React", "database=PostgreSQL"]`` into a StackConfig."""
    if not pairs:
        return None
    values: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise ValueError(f"Invalid --stack entry {pair!r}, expected category=choice")
        key = key.strip().lower()
        if key not in StackConfig.model_fields:
            raise ValueError(f"Unknown stack category {key!r}")
        values[key] = value.strip()
    return StackConfig(**values)


# =============================================================================
# run
# =============================================================================

async def _submit(config: CrewForgeConfig, task: TaskRequest, role: Optional[str]) -> TaskOutcome:
    orchestrator = await build_orchestrator(config)
    try:
        return await orchestrator.submit(task, role=role)
    finally:
        await orchestrator.close()


def cmd_run(args: argparse.Namespace) -> int:
    """Submit a task and show its plan and results."""
    try:
        task = TaskRequest.create(
            user_request=args.request,
            project_id=args.project_id,
            target_id=args.target,
            stack=parse_stack(args.stack),
        )
    except (TaskValidationError, ValidationError, ValueError) as e:
        print_error(f"Invalid task: {e}")
        return EXIT_USAGE

    config = CrewForgeConfig.load()
    if not args.json:
        print_info(f"Stack: {format_stack_summary(task.stack)}")

    outcome = asyncio.run(_submit(config, task, args.role))

    if args.json:
        print_json_data(outcome.to_dict())
    else:
        if outcome.plan is not None:
            print_plan(outcome.plan, outcome.assigned_role)
        if outcome.results:
            print_header("Results")
            print_results(outcome.results)
        if outcome.status == TaskStatus.SUCCESS:
            print_success(f"Task {outcome.task_id} complete ({outcome.assigned_role})")
        elif outcome.status == TaskStatus.BLOCKED:
            print_warning(outcome.message or "Task blocked")
        else:
            print_error(f"Task failed during {outcome.failed_stage}: {outcome.message}")

    if outcome.status == TaskStatus.SUCCESS:
        return EXIT_OK
    if outcome.status == TaskStatus.BLOCKED:
        return EXIT_BLOCKED
    return EXIT_FAILED


# =============================================================================
# check
# =============================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Print the risk assessment for a command without running it."""
    assessment = validate(args.command)
    if args.json:
        print_json_data(assessment.to_dict())
    else:
        print_assessment(assessment)
    return EXIT_OK if assessment.is_allowed else EXIT_BLOCKED


# =============================================================================
# model
# =============================================================================

async def _set_model(config: CrewForgeConfig, role: str, overrides: Dict[str, object]) -> Dict[str, object]:
    database = await init_db(config.resolve_db_path())
    try:
        spec = ROLE_SPECS[role]
        activity = AgentActivity(database, spec.name, spec.agent_type, list(spec.capabilities))
        await activity.initialize()
        if overrides:
            await set_agent_model_config(database, role, overrides)
            await activity.initialize()
        return await activity.model_overrides()
    finally:
        await database.dispose()


def cmd_model(args: argparse.Namespace) -> int:
    """Show or update a role's model override."""
    overrides: Dict[str, object] = {}
    if args.provider:
        overrides["provider"] = args.provider.upper()
    if args.model:
        overrides["model"] = args.model
    if args.temperature is not None:
        overrides["temperature"] = args.temperature
    if args.max_tokens is not None:
        overrides["max_tokens"] = args.max_tokens

    config = CrewForgeConfig.load()
    current = asyncio.run(_set_model(config, args.role, overrides))

    if overrides:
        print_success(f"Updated model config for {args.role}")
    if current:
        print_key_values(current, title=f"{args.role} model override")
    else:
        print_muted(f"{args.role} uses the defaults ({config.default_provider})")
    return EXIT_OK


def add_task_parsers(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Route, plan and execute a request")
    run_parser.add_argument("request", type=str, help="Free-text request")
    run_parser.add_argument("--project-id", type=str, default=None, help="Project the task belongs to")
    run_parser.add_argument("--target", type=str, default=None, help="Target host id from the config")
    run_parser.add_argument(
        "--stack",
        action="append",
        metavar="CATEGORY=CHOICE",
        help="Stack hint, repeatable (e.g. --stack frontend=React+Vite)",
    )
    run_parser.add_argument("--role", choices=list(ROLE_SPECS), default=None, help="Skip classification")
    run_parser.add_argument("--json", action="store_true", help="Print the outcome as JSON")
    run_parser.set_defaults(handler=cmd_run)

    check_parser = subparsers.add_parser("check", help="Assess the risk of a shell command")
    check_parser.add_argument("command", type=str, help="Command to assess")
    check_parser.add_argument("--json", action="store_true", help="Print the assessment as JSON")
    check_parser.set_defaults(handler=cmd_check)

    model_parser = subparsers.add_parser("model", help="Show or set a role's model override")
    model_parser.add_argument("role", choices=list(ROLE_SPECS), help="Role to configure")
    model_parser.add_argument("--provider", choices=[p.value for p in ModelProvider], type=str.upper)
    model_parser.add_argument("--model", type=str, default=None, help="Model name")
    model_parser.add_argument("--temperature", type=float, default=None)
    model_parser.add_argument("--max-tokens", type=int, default=None)
    model_parser.set_defaults(handler=cmd_model)
