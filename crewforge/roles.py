"""
Role Handlers
=============

One ``RoleHandler`` class serves every role. What differs between roles
(tools, capabilities, planning strategy, extra output rules) lives in a
``RoleSpec`` and the orchestrator picks it from ``ROLE_SPECS``.

Lifecycle of a task inside a handler:

    handler = RoleHandler(ROLE_SPECS["backend"], client, tools, memory, database, config)
    await handler.initialize()
    run = await handler.run(task)    # HandlerRun(plan, results)

Planning strategies:
- "model": one reasoning call, tolerant JSON parsing, fallback plan
- "direct": no planning call; a single generation step for the request
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from crewforge.activity import AgentActivity, AgentStatus, LogType
from crewforge.config import CrewForgeConfig
from crewforge.db import Database
from crewforge.errors import ProviderError
from crewforge.execution import ExecutionStage
from crewforge.memory import MemoryManager
from crewforge.models import Plan, TaskRequest
from crewforge.planning import build_planning_prompt, direct_generation_plan, parse_plan
from crewforge.reasoning import ChatMessage, ModelConfig, ReasoningClient
from crewforge.stacks import build_system_prompt
from crewforge.tools.base import ToolRegistry

PLANNING_MODEL = "model"
PLANNING_DIRECT = "direct"

UX_OUTPUT_RULES = """OUTPUT FORMAT (MUST FOLLOW EXACTLY):
- Output ONLY raw file content: no preamble, no explanation, no markdown fences
- Single file: output the raw content starting from line 1 (e.g. <!DOCTYPE html>)
- Multiple files: use EXACTLY this delimiter format, one per file:
    === FILE: relative/path/filename.ext ===
    <full file content here>

QUALITY RULES:
- WCAG AA accessibility: aria-labels, keyboard nav, visible focus rings
- Semantic HTML5: <nav>, <main>, <section>, <article>, <button>
- Mobile-first responsive layout
- Subtle animations that respect prefers-reduced-motion
- ALL CSS inline in a <style> tag so the output is self-contained
- NEVER truncate: output every line of every file completely"""


@dataclass(frozen=True)
class RoleSpec:
    """Static description of a role."""
    name: str
    agent_type: str
    tools: Tuple[str, ...] = ()
    capabilities: Tuple[str, ...] = ()
    planning: str = PLANNING_MODEL
    extra_rules: Optional[str] = None


ROLE_SPECS: Dict[str, RoleSpec] = {
    "devops": RoleSpec(
        name="devops",
        agent_type="DEVOPS",
        tools=("ssh-execute", "docker-run"),
        capabilities=("ssh", "docker", "deploy", "systemd", "nginx", "monitoring"),
    ),
    "backend": RoleSpec(
        name="backend",
        agent_type="BACKEND",
        tools=("file-write", "file-read"),
        capabilities=("api-design", "db-schema", "validation", "auth"),
    ),
    "qa": RoleSpec(
        name="qa",
        agent_type="QA",
        tools=("file-write", "file-read", "run-tests"),
        capabilities=("test-gen", "bug-report", "playwright", "vitest", "pytest", "a11y"),
    ),
    "ux": RoleSpec(
        name="ux",
        agent_type="FRONTEND",
        capabilities=("ui-components", "html", "css", "styling", "accessibility", "animations"),
        planning=PLANNING_DIRECT,
        extra_rules=UX_OUTPUT_RULES,
    ),
}


@dataclass
class HandlerRun:
    plan: Plan
    results: List[str] = field(default_factory=list)


class RoleHandler:
    """
    Plans and executes tasks for one role.

    Args:
        spec: The role's RoleSpec
        client: Reasoning client for planning and generation calls
        tools: Full tool registry; the handler keeps only the role's subset
        memory: Memory manager for the planning context (None disables it)
        database: Shared database for agent activity (None disables it)
        config: Runtime configuration
    """

    def __init__(
        self,
        spec: RoleSpec,
        client: ReasoningClient,
        tools: ToolRegistry,
        memory: Optional[MemoryManager],
        database: Optional[Database],
        config: CrewForgeConfig,
    ):
        self.spec = spec
        self.client = client
        self.tools = tools.subset(spec.tools)
        self.memory = memory
        self.config = config
        self.activity = AgentActivity(database, spec.name, spec.agent_type, list(spec.capabilities))
        # task_id -> memory block for tasks planned without a planning call
        self._direct_context: Dict[str, str] = {}
        self.executor = ExecutionStage(
            client,
            self.tools,
            self.activity,
            tool_timeout=config.tool_timeout,
            generation_max_tokens=config.generation_max_tokens,
        )

    @property
    def role(self) -> str:
        return self.spec.name

    async def initialize(self) -> None:
        await self.activity.initialize()

    def system_prompt(self, task: TaskRequest, memory_block: str = "") -> str:
        prompt = build_system_prompt(self.role, task.stack, self.spec.extra_rules)
        if memory_block:
            prompt = f"{prompt}\n\n{memory_block}"
        return prompt

    async def load_memory(self, task: TaskRequest) -> str:
        if self.memory is None:
            return ""
        return await self.memory.load_context(self.role, task.project_id)

    async def model_config(self) -> ModelConfig:
        """Defaults from configuration, then per-agent overrides from the agent record."""
        base = ModelConfig(
            provider=self.config.default_provider,
            model=self.config.default_model,
            temperature=self.config.temperature,
            max_tokens=self.config.planning_max_tokens,
        )
        return base.with_overrides(await self.activity.model_overrides())

    async def reason(self, task: TaskRequest) -> Plan:
        """
        Produce a plan for the task.

        Raises:
            ProviderError: if the planning call fails (the agent status
                becomes ERROR first)
        """
        await self.activity.set_status(AgentStatus.THINKING)

        if self.spec.planning == PLANNING_DIRECT:
            await self.activity.log(LogType.INFO, f"{self.role}: skipping plan step, generating deliverable directly")
            self._direct_context[task.task_id] = await self.load_memory(task)
            return direct_generation_plan(task)

        await self.activity.log(LogType.REASONING, f'Starting to reason about task: "{task.user_request}"')
        memory_block = await self.load_memory(task)

        messages = [
            ChatMessage("system", self.system_prompt(task)),
            ChatMessage("user", build_planning_prompt(self.role, task, list(self.tools), memory_block)),
        ]
        config = await self.model_config()
        try:
            response = await self.client.complete(config, messages)
        except ProviderError as e:
            await self.activity.log(LogType.ERROR, f"Planning failed: {e}")
            await self.activity.set_status(AgentStatus.ERROR)
            raise

        await self.activity.log(
            LogType.REASONING,
            f"Reasoning complete using {response.provider}:{response.model}",
            {"usage": response.usage},
        )
        plan = parse_plan(response.content)
        await self.activity.log(LogType.INFO, f"Plan: {len(plan.steps)} steps, risk={plan.risk_level}")
        return plan

    async def execute(self, plan: Plan, task: TaskRequest) -> List[str]:
        return await self.executor.execute(
            plan,
            task,
            system_prompt=self.system_prompt(task, self._direct_context.pop(task.task_id, "")),
            model_config=await self.model_config(),
        )

    async def run(self, task: TaskRequest) -> HandlerRun:
        """Reason then execute."""
        if self.activity.agent_id is None:
            await self.initialize()
        plan = await self.reason(task)
        results = await self.execute(plan, task)
        return HandlerRun(plan=plan, results=results)
