"""
End-to-end Orchestrator Tests
=============================

Runs whole tasks through classify -> plan -> execute -> memory with a
scripted reasoning client, real workspace file tools and a temporary
SQLite database.
"""

import json

import pytest
from sqlalchemy import func, select

from crewforge.db import AgentLog, AgentRecord
from crewforge.errors import ProviderError, TaskValidationError
from crewforge.execution import BLOCKED_RESULT
from crewforge.memory import MemoryManager, MemoryStore, MemorySummarizer
from crewforge.models import TaskRequest
from crewforge.orchestrator import Orchestrator, TaskStatus, build_orchestrator
from crewforge.projects import ProjectStore
from crewforge.reasoning import ModelConfig
from crewforge.stacks import StackConfig
from crewforge.tools import build_tool_registry

from conftest import FakeReasoningClient


TWO_STEP_PLAN = json.dumps({
    "taskSummary": "Create the API entry point",
    "riskLevel": "LOW",
    "requiresApproval": False,
    "steps": [
        {"stepNumber": 1, "action": "write file", "tool": "file-write",
         "args": {"filePath": "app/main.py", "content": "print('hi')"}, "reasoning": "entry"},
        {"stepNumber": 2, "action": "read back", "tool": "file-read",
         "args": {"filePath": "app/main.py"}, "reasoning": "verify"},
    ],
})


def make_orchestrator(config, database, replies):
    client = FakeReasoningClient(replies)
    store = MemoryStore(database, short_term_cap=config.short_term_cap)
    memory = MemoryManager(store, MemorySummarizer(client, ModelConfig(provider="DEEPSEEK")))
    orchestrator = Orchestrator(config, client, build_tool_registry(config), memory=memory, database=database)
    return orchestrator, client, store


class TestSubmit:
    """Tests for Orchestrator.submit."""

    @pytest.mark.asyncio
    async def test_two_tool_steps_end_to_end(self, config, database, temp_dir):
        orchestrator, client, store = make_orchestrator(
            config, database, ["```json\n" + TWO_STEP_PLAN + "\n```", "Created app/main.py entry point."],
        )
        task = TaskRequest(user_request="Create an API endpoint file", project_id="shop")

        outcome = await orchestrator.submit(task)

        assert outcome.status == TaskStatus.SUCCESS
        assert outcome.assigned_role == "backend"
        assert outcome.results == ["Written 11 chars to app/main.py", "print('hi')"]
        assert (temp_dir / "app" / "main.py").read_text() == "print('hi')"

        planning_prompt = client.calls[0]["messages"][1].content
        assert "- file-write:" in planning_prompt
        assert "ssh-execute" not in planning_prompt

        memories = await store.list_memories("backend", "shop")
        assert [m.content for m in memories] == ["Created app/main.py entry point."]
        assert memories[0].task_id == task.task_id

    @pytest.mark.asyncio
    async def test_memory_feeds_next_plan(self, config, database):
        orchestrator, client, _ = make_orchestrator(
            config, database,
            [TWO_STEP_PLAN, "Created app/main.py entry point.", TWO_STEP_PLAN, "Read it again."],
        )
        await orchestrator.submit(TaskRequest(user_request="Create an API endpoint", project_id="shop"))
        await orchestrator.submit(TaskRequest(user_request="Update the API endpoint", project_id="shop"))

        second_prompt = client.calls[2]["messages"][1].content
        assert "## What I Remember" in second_prompt
        assert "Created app/main.py entry point." in second_prompt

    @pytest.mark.asyncio
    async def test_planning_failure_is_fatal(self, config, database):
        orchestrator, _, store = make_orchestrator(
            config, database, [ProviderError("CLAUDE call timed out after 120s", "CLAUDE")],
        )
        outcome = await orchestrator.submit(TaskRequest(user_request="Add auth middleware"))

        assert outcome.status == TaskStatus.FAILED
        assert outcome.failed_stage == "planning"
        assert outcome.plan is None
        assert "timed out" in outcome.message
        assert await store.list_memories() == []

        async with database.session() as session:
            record = (await session.execute(
                select(AgentRecord).where(AgentRecord.name == "backend")
            )).scalar_one()
            assert record.status == "ERROR"

    @pytest.mark.asyncio
    async def test_critical_plan_is_blocked(self, config, database):
        plan = json.loads(TWO_STEP_PLAN)
        plan.update(riskLevel="CRITICAL", requiresApproval=True)
        orchestrator, _, store = make_orchestrator(config, database, [json.dumps(plan)])

        outcome = await orchestrator.submit(TaskRequest(user_request="Drop the database schema"))

        assert outcome.status == TaskStatus.BLOCKED
        assert outcome.results == [BLOCKED_RESULT]
        assert await store.list_memories() == []

    @pytest.mark.asyncio
    async def test_ux_skips_planning_call(self, config, database):
        orchestrator, client, _ = make_orchestrator(
            config, database, ["<!DOCTYPE html><html></html>", "Built landing page."],
        )
        outcome = await orchestrator.submit(TaskRequest(user_request="Build a landing page with a hero section"))

        assert outcome.assigned_role == "ux"
        assert outcome.results == ["<!DOCTYPE html><html></html>"]
        assert len(outcome.plan.steps) == 1
        generation = client.calls[0]
        assert generation["config"].max_tokens == config.generation_max_tokens
        assert "OUTPUT FORMAT" in generation["messages"][0].content

    @pytest.mark.asyncio
    async def test_unparseable_plan_falls_back(self, config, database):
        orchestrator, _, _ = make_orchestrator(
            config, database, ["I will just describe it.", "Here is the module.", "Described module."],
        )
        outcome = await orchestrator.submit(TaskRequest(user_request="Design the database schema"), role="backend")

        assert outcome.status == TaskStatus.SUCCESS
        assert outcome.plan.task_summary == "I will just describe it."
        assert outcome.results == ["Here is the module."]

    @pytest.mark.asyncio
    async def test_role_override(self, config, database):
        orchestrator, _, _ = make_orchestrator(config, database, [TWO_STEP_PLAN, "note"])
        outcome = await orchestrator.submit(TaskRequest(user_request="Create an API endpoint"), role="qa")
        assert outcome.assigned_role == "qa"

    @pytest.mark.asyncio
    async def test_invalid_mapping_request(self, config, database):
        orchestrator, client, _ = make_orchestrator(config, database, [])
        with pytest.raises(TaskValidationError):
            await orchestrator.submit({"user_request": "   "})
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_activity_is_logged(self, config, database):
        orchestrator, _, _ = make_orchestrator(config, database, [TWO_STEP_PLAN, "note"])
        await orchestrator.submit(TaskRequest(user_request="Create an API endpoint"))

        async with database.session() as session:
            record = (await session.execute(
                select(AgentRecord).where(AgentRecord.name == "backend")
            )).scalar_one()
            assert record.status == "IDLE"
            count = (await session.execute(
                select(func.count()).select_from(AgentLog).where(AgentLog.agent_id == record.id)
            )).scalar_one()
            assert count > 0

    def test_outcome_to_dict(self):
        from crewforge.orchestrator import TaskOutcome
        data = TaskOutcome(task_id="t", assigned_role="qa", status=TaskStatus.FAILED,
                           failed_stage="planning", message="down").to_dict()
        assert data == {
            "taskId": "t", "assignedRole": "qa", "status": "FAILED", "plan": None,
            "results": [], "failedStage": "planning", "message": "down",
        }


class TestBuildOrchestrator:
    """Tests for build_orchestrator wiring."""

    @pytest.mark.asyncio
    async def test_builds_and_closes(self, config, temp_dir):
        orchestrator = await build_orchestrator(config, client=FakeReasoningClient([TWO_STEP_PLAN, "note"]))
        try:
            assert (temp_dir / "crewforge.db").exists()
            assert {"file-read", "file-write", "run-tests", "ssh-execute", "docker-run"} <= set(orchestrator.tools.names())
            outcome = await orchestrator.submit(TaskRequest(user_request="Create an API endpoint"))
            assert outcome.status == TaskStatus.SUCCESS
        finally:
            await orchestrator.close()


class TestRoleHandler:
    """Tests for RoleHandler used directly."""

    @pytest.mark.asyncio
    async def test_run_returns_plan_and_results(self, config, database):
        from crewforge.roles import ROLE_SPECS, RoleHandler

        client = FakeReasoningClient([TWO_STEP_PLAN])
        handler = RoleHandler(ROLE_SPECS["qa"], client, build_tool_registry(config), None, database, config)
        run = await handler.run(TaskRequest(user_request="Write tests"))

        assert handler.activity.agent_id is not None
        assert run.plan.task_summary == "Create the API entry point"
        assert run.results[1] == "print('hi')"

    @pytest.mark.asyncio
    async def test_agent_model_override_applies(self, config, database):
        from crewforge.activity import set_agent_model_config
        from crewforge.roles import ROLE_SPECS, RoleHandler

        client = FakeReasoningClient([TWO_STEP_PLAN])
        handler = RoleHandler(ROLE_SPECS["backend"], client, build_tool_registry(config), None, database, config)
        await handler.initialize()
        assert await set_agent_model_config(database, "backend", {"provider": "deepseek", "model": "deepseek-chat"})

        await handler.reason(TaskRequest(user_request="Add an endpoint"))
        used = client.calls[0]["config"]
        assert used.provider == "DEEPSEEK"
        assert used.model == "deepseek-chat"
        assert used.max_tokens == config.planning_max_tokens


class TestProjectStack:
    """Stored project stacks feed routing and prompts."""

    @pytest.mark.asyncio
    async def test_stored_frontend_stack_routes_to_ux(self, config, database):
        await ProjectStore(database).create_project(
            "Landing", project_id="site", stack=StackConfig(frontend="HTML"),
        )
        client = FakeReasoningClient(["<html></html>", "Updated copy."])
        orchestrator = Orchestrator(
            config, client, build_tool_registry(config), database=database, projects=ProjectStore(database),
        )

        outcome = await orchestrator.submit(TaskRequest(user_request="Improve the onboarding copy", project_id="site"))

        assert outcome.assigned_role == "ux"
        assert outcome.results == ["<html></html>"]
        assert "Plain HTML Landing Page" in client.calls[0]["messages"][0].content

    @pytest.mark.asyncio
    async def test_without_project_routes_to_backend(self, config, database):
        orchestrator, _, _ = make_orchestrator(config, database, [TWO_STEP_PLAN, "note"])
        orchestrator.projects = ProjectStore(database)
        outcome = await orchestrator.submit(TaskRequest(user_request="Improve the onboarding copy", project_id="ghost"))
        assert outcome.assigned_role == "backend"

    @pytest.mark.asyncio
    async def test_explicit_stack_wins(self, config, database):
        await ProjectStore(database).create_project(
            "Landing", project_id="site", stack=StackConfig(frontend="HTML"),
        )
        orchestrator, _, _ = make_orchestrator(config, database, [TWO_STEP_PLAN, "note"])
        orchestrator.projects = ProjectStore(database)
        task = TaskRequest(
            user_request="Improve the onboarding copy",
            project_id="site",
            stack=StackConfig(backend="FastAPI", database="PostgreSQL"),
        )
        assert (await orchestrator.resolve_stack(task)).stack == task.stack
        outcome = await orchestrator.submit(task)
        assert outcome.assigned_role == "backend"


class TestDirectRoleMemory:
    """Roles that skip planning still see their memory."""

    @pytest.mark.asyncio
    async def test_ux_generation_sees_memory(self, config, database):
        orchestrator, client, store = make_orchestrator(
            config, database, ["<html></html>", "Built pricing page."],
        )
        await store.save_memory("ux", "Brand colour is teal #0d9488", project_id="site")

        outcome = await orchestrator.submit(
            TaskRequest(user_request="Build a pricing page", project_id="site"),
        )

        assert outcome.assigned_role == "ux"
        system_prompt = client.calls[0]["messages"][0].content
        assert "Brand colour is teal #0d9488" in system_prompt
