"""
Execution Stage
===============

Runs a plan's steps in order and returns one result string per step.

- Tool steps dispatch to the role's tool registry, bounded by the tool
  timeout. A missing tool, a raised exception (PolicyBlocked included) or
  a timeout becomes an ``ERROR: ...`` result and execution moves on.
- Generation steps (no tool) make one reasoning call that produces the
  deliverable itself, with a larger output budget than planning.
- A plan that is CRITICAL and requires approval is not executed at all.

Steps never abort the run.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from crewforge.activity import AgentActivity, AgentStatus, LogType
from crewforge.errors import PolicyBlocked
from crewforge.models import Plan, PlanStep, TaskRequest
from crewforge.reasoning import ChatMessage, ModelConfig, ReasoningClient
from crewforge.risk import RiskLevel
from crewforge.tools.base import ToolRegistry
from crewforge.tools.ssh import TARGET_KEYS

BLOCKED_RESULT = "BLOCKED: Critical risk requires human approval"
LOG_PREVIEW_CHARS = 200

GENERATION_OUTPUT_RULES = """OUTPUT RULES:
- Produce the COMPLETE deliverable for this step, not a description of it
- Never truncate and never use placeholders such as "... rest of code ..."
- Single file: output the raw file content only, no preamble and no markdown fences
- Multiple files: separate them with exactly this delimiter, one per file:
    === FILE: relative/path/filename.ext ===
    <full file content>"""


def requires_halt(plan: Plan) -> bool:
    """True when the plan must wait for a human before anything runs."""
    return plan.requires_approval and plan.risk_level == RiskLevel.CRITICAL


def stringify_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


def build_generation_prompt(task: TaskRequest, step: PlanStep) -> str:
    lines = [
        f"**Original request:** {task.user_request}",
        f"**Current step:** {step.action}",
    ]
    if step.reasoning:
        lines.append(f"**Notes:** {step.reasoning}")
    lines.extend(["", GENERATION_OUTPUT_RULES])
    return "\n".join(lines)


def generation_fallback(step: PlanStep) -> str:
    return step.reasoning or f"[Reasoning] {step.action}"


class ExecutionStage:
    """
    Step dispatcher for one role handler.

    Args:
        client: Reasoning client used for generation steps
        tools: The tools this role may call
        activity: Status and activity log sink
        tool_timeout: Seconds allowed per tool call
        generation_max_tokens: Output budget for generation steps
    """

    def __init__(
        self,
        client: ReasoningClient,
        tools: ToolRegistry,
        activity: AgentActivity,
        *,
        tool_timeout: float = 60.0,
        generation_max_tokens: int = 16384,
    ):
        self.client = client
        self.tools = tools
        self.activity = activity
        self.tool_timeout = tool_timeout
        self.generation_max_tokens = generation_max_tokens

    async def execute(
        self,
        plan: Plan,
        task: TaskRequest,
        *,
        system_prompt: str = "",
        model_config: Optional[ModelConfig] = None,
    ) -> List[str]:
        if requires_halt(plan):
            await self.activity.log(LogType.SECURITY, "CRITICAL risk plan requires human approval, halting")
            await self.activity.set_status(AgentStatus.WAITING)
            return [BLOCKED_RESULT]

        await self.activity.set_status(AgentStatus.EXECUTING)
        model_config = model_config or ModelConfig()
        results: List[str] = []

        for step in plan.steps:
            await self.activity.log(LogType.EXECUTION, f"Step {step.step_number}: {step.action}")
            if step.is_generation:
                results.append(await self._generate(step, task, system_prompt, model_config))
            else:
                results.append(await self._run_tool(step, task))

        await self.activity.set_status(AgentStatus.IDLE)
        await self.activity.log(LogType.SUCCESS, f"Task complete, {len(results)} steps executed")
        return results

    async def _run_tool(self, step: PlanStep, task: TaskRequest) -> str:
        tool = self.tools.get(step.tool)
        if tool is None:
            message = f'Tool "{step.tool}" not found'
            await self.activity.log(LogType.ERROR, message)
            return f"ERROR: {message}"

        args: Dict[str, Any] = dict(step.args)
        if getattr(tool, "needs_target", False) and task.target_id:
            if not any(args.get(key) for key in TARGET_KEYS):
                args["target"] = task.target_id

        try:
            result = await asyncio.wait_for(tool.execute(args), timeout=self.tool_timeout)
        except asyncio.TimeoutError:
            message = f"{step.tool} timed out after {self.tool_timeout:.0f}s"
            await self.activity.log(LogType.ERROR, f"Step {step.step_number} failed: {message}")
            return f"ERROR: {message}"
        except Exception as e:
            message = str(e) or type(e).__name__
            log_type = LogType.SECURITY if isinstance(e, PolicyBlocked) else LogType.ERROR
            await self.activity.log(log_type, f"Step {step.step_number} failed: {message}")
            return f"ERROR: {message}"

        text = stringify_result(result)
        await self.activity.log(LogType.SUCCESS, f"Step {step.step_number} done: {text[:LOG_PREVIEW_CHARS]}")
        return text

    async def _generate(
        self,
        step: PlanStep,
        task: TaskRequest,
        system_prompt: str,
        model_config: ModelConfig,
    ) -> str:
        messages = []
        if system_prompt:
            messages.append(ChatMessage("system", system_prompt))
        messages.append(ChatMessage("user", build_generation_prompt(task, step)))

        config = model_config.with_overrides({"max_tokens": self.generation_max_tokens})
        try:
            response = await self.client.complete(config, messages)
        except Exception as e:
            message = str(e) or type(e).__name__
            await self.activity.log(LogType.ERROR, f"Generation for step {step.step_number} failed: {message}")
            return generation_fallback(step)

        if not response.content.strip():
            return generation_fallback(step)
        await self.activity.log(
            LogType.SUCCESS,
            f"Step {step.step_number} generated {len(response.content)} chars",
            {"usage": response.usage},
        )
        return response.content
