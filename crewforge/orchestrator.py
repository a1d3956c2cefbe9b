"""
Task Orchestrator
=================

Single entry point for a submitted task:

    validate -> project stack -> classify -> plan -> execute -> memory write-back

Every collaborator (reasoning client, tool registry, SSH pool, memory,
database) is built once by ``build_orchestrator`` and passed in
explicitly. Tasks are independent; several ``submit`` calls may run
concurrently.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Mapping, Optional, Union

from crewforge.config import CrewForgeConfig
from crewforge.db import Database, init_db
from crewforge.errors import PersistenceError, ProviderError
from crewforge.execution import requires_halt
from crewforge.memory import MemoryManager, MemoryStore, MemorySummarizer
from crewforge.models import Plan, TaskRequest
from crewforge.projects import ProjectStore, stack_from_record
from crewforge.reasoning import ModelConfig, ModelRouter, ReasoningClient
from crewforge.roles import ROLE_SPECS, RoleHandler
from crewforge.routing import DEFAULT_ROLE, classify_request
from crewforge.stacks import format_stack_summary
from crewforge.tools import SSHConnectionPool, ToolRegistry, build_tool_registry

logger = logging.getLogger(__name__)

SUMMARIZER_TEMPERATURE = 0.3


class TaskStatus(StrEnum):
    SUCCESS = "SUCCESS"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"


@dataclass
class TaskOutcome:
    """What happened to one submitted task."""
    task_id: str
    assigned_role: str
    status: TaskStatus
    plan: Optional[Plan] = None
    results: List[str] = field(default_factory=list)
    failed_stage: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "assignedRole": self.assigned_role,
            "status": str(self.status),
            "plan": self.plan.to_wire() if self.plan else None,
            "results": list(self.results),
            "failedStage": self.failed_stage,
            "message": self.message,
        }


class Orchestrator:
    """
    Routes tasks to role handlers and writes completed work back to memory.

    Args:
        config: Runtime configuration
        client: Reasoning client shared by all handlers
        tools: Full tool registry
        memory: Memory manager (None disables memory)
        database: Shared database (None disables activity persistence)
        pool: SSH connection pool, closed by ``close()``
        projects: Project registry used to fill in a task's stack (None disables it)
    """

    def __init__(
        self,
        config: CrewForgeConfig,
        client: ReasoningClient,
        tools: ToolRegistry,
        memory: Optional[MemoryManager] = None,
        database: Optional[Database] = None,
        pool: Optional[SSHConnectionPool] = None,
        projects: Optional[ProjectStore] = None,
    ):
        self.config = config
        self.client = client
        self.tools = tools
        self.memory = memory
        self.database = database
        self.pool = pool
        self.projects = projects

    async def resolve_stack(self, task: TaskRequest) -> TaskRequest:
        """Fill in the stored project stack when the task names a project but carries no stack."""
        if task.stack is not None or not task.project_id or self.projects is None:
            return task
        try:
            project = await self.projects.get_project(task.project_id)
        except PersistenceError as e:
            logger.warning("Could not load project %s: %s", task.project_id, e)
            return task
        if project is None:
            return task
        stack = stack_from_record(project)
        logger.info("Project \"%s\", stack: %s", project.name, format_stack_summary(stack))
        return task.model_copy(update={"stack": stack})

    def classify(self, task: TaskRequest) -> str:
        return classify_request(task.user_request, task.stack)

    def build_handler(self, role: str) -> RoleHandler:
        spec = ROLE_SPECS.get(role) or ROLE_SPECS[DEFAULT_ROLE]
        return RoleHandler(spec, self.client, self.tools, self.memory, self.database, self.config)

    async def submit(
        self,
        request: Union[TaskRequest, Mapping[str, Any]],
        *,
        role: Optional[str] = None,
    ) -> TaskOutcome:
        """
        Run one task through the pipeline.

        Args:
            request: A TaskRequest or a mapping of its fields
            role: Force a role instead of classifying the request

        Raises:
            TaskValidationError: if a mapping request is malformed
        """
        task = request if isinstance(request, TaskRequest) else TaskRequest.create(**dict(request))
        task = await self.resolve_stack(task)
        assigned = role if role in ROLE_SPECS else self.classify(task)
        logger.info("Task %s routed to [%s]", task.task_id, assigned.upper())

        handler = self.build_handler(assigned)
        await handler.initialize()

        try:
            plan = await handler.reason(task)
        except ProviderError as e:
            logger.error("Planning failed for task %s: %s", task.task_id, e)
            return TaskOutcome(
                task_id=task.task_id,
                assigned_role=assigned,
                status=TaskStatus.FAILED,
                failed_stage="planning",
                message=str(e),
            )

        results = await handler.execute(plan, task)

        if requires_halt(plan):
            return TaskOutcome(
                task_id=task.task_id,
                assigned_role=assigned,
                status=TaskStatus.BLOCKED,
                plan=plan,
                results=results,
                message="Critical risk plan requires human approval",
            )

        if self.memory is not None:
            await self.memory.record_task(assigned, task, plan, results)

        return TaskOutcome(
            task_id=task.task_id,
            assigned_role=assigned,
            status=TaskStatus.SUCCESS,
            plan=plan,
            results=results,
        )

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close_all()
        if self.database is not None:
            await self.database.dispose()


async def build_orchestrator(
    config: CrewForgeConfig,
    *,
    client: Optional[ReasoningClient] = None,
    pool: Optional[SSHConnectionPool] = None,
) -> Orchestrator:
    """Construct the database, router, tools and memory once and wire them together."""
    database = await init_db(config.resolve_db_path())
    client = client or ModelRouter(timeout=config.reasoning_timeout)
    pool = pool or SSHConnectionPool()

    summarizer = MemorySummarizer(
        client,
        ModelConfig(
            provider=config.summarizer_provider,
            temperature=SUMMARIZER_TEMPERATURE,
            max_tokens=config.summarizer_max_tokens,
        ),
    )
    memory = MemoryManager(
        MemoryStore(database, short_term_cap=config.short_term_cap),
        summarizer,
        recent_limit=config.recent_memory_limit,
        refresh_interval=config.summary_refresh_interval,
    )
    return Orchestrator(
        config,
        client,
        build_tool_registry(config, pool),
        memory=memory,
        database=database,
        pool=pool,
        projects=ProjectStore(database),
    )
