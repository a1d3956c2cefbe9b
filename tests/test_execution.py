"""
Tests for the Execution Stage
=============================
"""

import asyncio

import pytest

from crewforge.activity import AgentActivity, AgentStatus
from crewforge.errors import ProviderError
from crewforge.execution import BLOCKED_RESULT, ExecutionStage, stringify_result
from crewforge.models import Plan, PlanStep, TaskRequest
from crewforge.risk import RiskLevel
from crewforge.security import enforce_command_policy
from crewforge.tools.base import ToolRegistry

from conftest import FakeReasoningClient, RecordingTool


def make_stage(tools=(), replies=(), **kwargs):
    client = FakeReasoningClient(replies)
    activity = AgentActivity(None, "backend", "BACKEND")
    stage = ExecutionStage(client, ToolRegistry(tools), activity, **kwargs)
    return stage, client, activity


def make_plan(*steps, risk=RiskLevel.LOW, approval=False) -> Plan:
    return Plan(task_summary="test plan", steps=list(steps), risk_level=risk, requires_approval=approval)


class PolicyTool:
    name = "shell"
    description = "runs a command"

    async def execute(self, args):
        enforce_command_policy(args["command"])
        return "ran"


class SlowTool:
    name = "slow"
    description = "never finishes in time"

    async def execute(self, args):
        await asyncio.sleep(5)
        return "late"


TASK = TaskRequest(user_request="Build it", target_id="prod-1")


class TestToolSteps:
    """Tool dispatch and per-step failure isolation."""

    @pytest.mark.asyncio
    async def test_results_in_step_order(self):
        first = RecordingTool("first", "one")
        second = RecordingTool("second", {"count": 2})
        stage, _, activity = make_stage([first, second])
        plan = make_plan(
            PlanStep(step_number=1, action="a", tool="first", args={"x": 1}),
            PlanStep(step_number=2, action="b", tool="second"),
        )

        results = await stage.execute(plan, TASK)
        assert results == ["one", '{"count": 2}']
        assert first.calls == [{"x": 1}]
        assert activity.status == AgentStatus.IDLE

    @pytest.mark.asyncio
    async def test_unknown_tool_continues(self):
        tool = RecordingTool("known")
        stage, _, _ = make_stage([tool])
        plan = make_plan(
            PlanStep(step_number=1, action="a", tool="missing"),
            PlanStep(step_number=2, action="b", tool="known"),
        )
        results = await stage.execute(plan, TASK)
        assert results == ['ERROR: Tool "missing" not found', "ok"]

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error(self):
        stage, _, _ = make_stage([RecordingTool("boom", error=RuntimeError("disk full"))])
        results = await stage.execute(make_plan(PlanStep(step_number=1, action="a", tool="boom")), TASK)
        assert results == ["ERROR: disk full"]

    @pytest.mark.asyncio
    async def test_blocked_command_reports_assessment(self):
        stage, _, _ = make_stage([PolicyTool()])
        plan = make_plan(
            PlanStep(step_number=1, action="wipe", tool="shell", args={"command": "rm -rf /"}),
            PlanStep(step_number=2, action="list", tool="shell", args={"command": "ls"}),
        )
        results = await stage.execute(plan, TASK)
        assert results[0].startswith("ERROR: Security blocked (CRITICAL, score 100)")
        assert "rm-recursive-root" in results[0]
        assert results[1] == "ran"

    @pytest.mark.asyncio
    async def test_tool_timeout(self):
        stage, _, _ = make_stage([SlowTool()], tool_timeout=0.05)
        results = await stage.execute(make_plan(PlanStep(step_number=1, action="a", tool="slow")), TASK)
        assert results[0].startswith("ERROR: slow timed out")

    @pytest.mark.asyncio
    async def test_target_injected_for_remote_tools(self):
        remote = RecordingTool("ssh-execute")
        remote.needs_target = True
        local = RecordingTool("file-read")
        stage, _, _ = make_stage([remote, local])
        plan = make_plan(
            PlanStep(step_number=1, action="a", tool="ssh-execute", args={"command": "uptime"}),
            PlanStep(step_number=2, action="b", tool="ssh-execute", args={"command": "ls", "target": "other"}),
            PlanStep(step_number=3, action="c", tool="file-read", args={"filePath": "a"}),
        )
        await stage.execute(plan, TASK)
        assert remote.calls[0]["target"] == "prod-1"
        assert remote.calls[1]["target"] == "other"
        assert "target" not in local.calls[0]

    def test_stringify(self):
        assert stringify_result("x") == "x"
        assert stringify_result(None) == "null"
        assert stringify_result([1, "a"]) == '[1, "a"]'


class TestGenerationSteps:
    """Tool-less steps make a generation call."""

    @pytest.mark.asyncio
    async def test_generation_uses_larger_budget(self):
        stage, client, _ = make_stage(replies=["<!DOCTYPE html>..."], generation_max_tokens=16384)
        plan = make_plan(PlanStep(step_number=1, action="write page", reasoning="hero first"))

        results = await stage.execute(plan, TASK, system_prompt="persona")
        assert results == ["<!DOCTYPE html>..."]

        call = client.calls[0]
        assert call["config"].max_tokens == 16384
        assert call["messages"][0].role == "system"
        user = call["messages"][1].content
        assert "Build it" in user
        assert "write page" in user
        assert "hero first" in user
        assert "=== FILE:" in user

    @pytest.mark.asyncio
    async def test_generation_failure_falls_back_to_reasoning(self):
        stage, _, _ = make_stage(replies=[ProviderError("timeout")])
        plan = make_plan(PlanStep(step_number=1, action="write page", reasoning="hero first"))
        assert await stage.execute(plan, TASK) == ["hero first"]

    @pytest.mark.asyncio
    async def test_unexpected_client_error_does_not_abort_run(self):
        reader = RecordingTool("file-read", "contents")
        stage, _, _ = make_stage([reader], replies=[RuntimeError("socket reset")])
        plan = make_plan(
            PlanStep(step_number=1, action="write page", reasoning="notes"),
            PlanStep(step_number=2, action="read", tool="file-read", args={"filePath": "a"}),
        )
        assert await stage.execute(plan, TASK) == ["notes", "contents"]
        assert reader.calls == [{"filePath": "a"}]

    @pytest.mark.asyncio
    async def test_generation_failure_without_reasoning(self):
        stage, _, _ = make_stage(replies=[ProviderError("timeout")])
        plan = make_plan(PlanStep(step_number=1, action="write page"))
        assert await stage.execute(plan, TASK) == ["[Reasoning] write page"]


class TestCriticalHalt:
    """CRITICAL plans that need approval never run."""

    @pytest.mark.asyncio
    async def test_blocked_before_any_step(self):
        tool = RecordingTool("first")
        stage, _, activity = make_stage([tool])
        plan = make_plan(
            PlanStep(step_number=1, action="a", tool="first"),
            risk=RiskLevel.CRITICAL,
            approval=True,
        )
        assert await stage.execute(plan, TASK) == [BLOCKED_RESULT]
        assert tool.calls == []
        assert activity.status == AgentStatus.WAITING

    @pytest.mark.asyncio
    async def test_critical_without_approval_flag_runs(self):
        tool = RecordingTool("first")
        stage, _, _ = make_stage([tool])
        plan = make_plan(PlanStep(step_number=1, action="a", tool="first"), risk=RiskLevel.CRITICAL)
        assert await stage.execute(plan, TASK) == ["ok"]
