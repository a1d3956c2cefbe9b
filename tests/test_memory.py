"""
Tests for the Memory Subsystem
==============================

Store rotation, lessons, the formatted memory block, and the task
write-back path with a scripted summarizer.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from crewforge.errors import PersistenceError, ProviderError
from crewforge.memory import (
    MemoryManager,
    MemoryStore,
    MemorySummarizer,
    MemoryType,
    format_age,
    format_memory_block,
)
from crewforge.models import Plan, PlanStep, TaskRequest
from crewforge.reasoning import ModelConfig

from conftest import FakeReasoningClient


def make_plan(summary: str = "Built the thing") -> Plan:
    return Plan(task_summary=summary, steps=[PlanStep(step_number=1, action="do")])


# =============================================================================
# Store
# =============================================================================

class TestMemoryStore:
    """Tests for MemoryStore CRUD and rotation."""

    @pytest.mark.asyncio
    async def test_rotation_keeps_newest(self, database):
        store = MemoryStore(database, short_term_cap=5)
        for i in range(10):
            await store.save_memory("backend", f"note {i}", project_id="shop")

        remaining = await store.list_memories("backend", "shop")
        assert len(remaining) == 5
        assert [m.content for m in remaining] == [f"note {i}" for i in range(9, 4, -1)]

    @pytest.mark.asyncio
    async def test_rotation_is_per_role_and_project(self, database):
        store = MemoryStore(database, short_term_cap=2)
        for i in range(3):
            await store.save_memory("backend", f"shop {i}", project_id="shop")
            await store.save_memory("backend", f"blog {i}", project_id="blog")
            await store.save_memory("qa", f"qa {i}", project_id="shop")
            await store.save_memory("backend", f"global {i}")

        assert len(await store.list_memories("backend", "shop")) == 2
        assert len(await store.list_memories("backend", "blog")) == 2
        assert len(await store.list_memories("qa", "shop")) == 2
        unscoped = [m for m in await store.list_memories("backend") if m.project_id is None]
        assert len(unscoped) == 2

    @pytest.mark.asyncio
    async def test_lessons_survive_rotation(self, database):
        store = MemoryStore(database, short_term_cap=2)
        first = await store.save_memory("devops", "always check disk space first")
        assert await store.promote_to_lesson(first, importance=90)
        for i in range(5):
            await store.save_memory("devops", f"note {i}")

        lessons = await store.lessons("devops")
        assert [m.content for m in lessons] == ["always check disk space first"]
        assert lessons[0].importance == 90
        assert lessons[0].memory_type == MemoryType.LESSON

    @pytest.mark.asyncio
    async def test_recent_memories_order_by_importance(self, database):
        store = MemoryStore(database)
        await store.save_memory("qa", "low")
        await store.save_memory("qa", "high", importance=80)
        await store.save_memory("qa", "newest")

        recent = await store.recent_memories("qa", limit=2)
        assert [m.content for m in recent] == ["high", "newest"]

    @pytest.mark.asyncio
    async def test_content_is_bounded(self, database):
        store = MemoryStore(database)
        await store.save_memory("qa", "x" * 5000)
        (memory,) = await store.list_memories("qa")
        assert len(memory.content) == 2000

    @pytest.mark.asyncio
    async def test_forget_and_forget_all(self, database):
        store = MemoryStore(database)
        keep = await store.save_memory("qa", "keep", project_id="a")
        drop = await store.save_memory("qa", "drop", project_id="b")
        await store.save_memory("ux", "other", project_id="b")

        assert await store.forget(drop) is True
        assert await store.forget(drop) is False
        assert await store.forget_all(project_id="b") == 1
        assert [m.id for m in await store.list_memories()] == [keep]

        with pytest.raises(ValueError):
            await store.forget_all()

    @pytest.mark.asyncio
    async def test_promote_missing(self, database):
        assert await MemoryStore(database).promote_to_lesson(999) is False

    @pytest.mark.asyncio
    async def test_task_counter_and_summary_upsert(self, database):
        store = MemoryStore(database)
        assert await store.increment_task_count("shop") == 1
        assert await store.increment_task_count("shop") == 2

        summary = await store.project_summary("shop")
        assert summary.content == ""
        await store.upsert_project_summary("shop", "Uses FastAPI.", 2)
        summary = await store.project_summary("shop")
        assert summary.content == "Uses FastAPI."
        assert summary.task_count == 2


# =============================================================================
# Formatting
# =============================================================================

class TestFormatting:
    """Tests for format_age and format_memory_block."""

    def test_format_age(self):
        now = datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc)
        assert format_age(now - timedelta(minutes=12), now) == "12m ago"
        assert format_age(now - timedelta(hours=3), now) == "3h ago"
        assert format_age(now - timedelta(days=2), now) == "2d ago"
        # naive timestamps are read as UTC
        assert format_age((now - timedelta(minutes=5)).replace(tzinfo=None), now) == "5m ago"

    def test_empty_block(self):
        assert format_memory_block([], None, []) == ""

    def test_block_order(self):
        now = datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc)
        recent = [SimpleNamespace(content="Added /users", created_at=now - timedelta(hours=1))]
        lessons = [SimpleNamespace(content="Use bcrypt", created_at=now)]
        block = format_memory_block(recent, "FastAPI shop backend.", lessons, now)

        lines = block.splitlines()
        assert lines[0] == "## What I Remember"
        assert lines[-1] == "---"
        assert block.index("Use bcrypt") < block.index("FastAPI shop backend.") < block.index("Added /users")
        assert "- [1h ago] Added /users" in lines


# =============================================================================
# Manager
# =============================================================================

class TestMemoryManager:
    """Read and write paths through MemoryManager."""

    @pytest.mark.asyncio
    async def test_record_and_load(self, database):
        client = FakeReasoningClient(["Created /users endpoint with validation."])
        manager = MemoryManager(MemoryStore(database), MemorySummarizer(client, ModelConfig()))
        task = TaskRequest(user_request="Add a users endpoint", project_id="shop")

        note = await manager.record_task("backend", task, make_plan(), ["Written 120 chars to app.py"])
        assert note == "Created /users endpoint with validation."

        block = await manager.load_context("backend", "shop")
        assert "Created /users endpoint with validation." in block
        assert "Written 120 chars" in client.calls[0]["messages"][1].content

    @pytest.mark.asyncio
    async def test_summarizer_failure_uses_plan_summary(self, database):
        client = FakeReasoningClient([ProviderError("down")])
        manager = MemoryManager(MemoryStore(database), MemorySummarizer(client, ModelConfig()))
        note = await manager.record_task("qa", TaskRequest(user_request="x"), make_plan("S" * 300), [])
        assert note == "S" * 200

    @pytest.mark.asyncio
    async def test_summary_refreshes_on_interval(self, database):
        client = FakeReasoningClient(["Did one.", "Did two.", "Shop runs FastAPI with tests."])
        store = MemoryStore(database)
        manager = MemoryManager(store, MemorySummarizer(client, ModelConfig()), refresh_interval=2)

        await manager.record_task("backend", TaskRequest(user_request="a", project_id="shop"), make_plan(), [])
        assert (await store.project_summary("shop")).content == ""

        await manager.record_task("qa", TaskRequest(user_request="b", project_id="shop"), make_plan(), [])
        summary = await store.project_summary("shop")
        assert summary.content == "Shop runs FastAPI with tests."
        assert summary.task_count == 2
        digest_prompt = client.calls[2]["messages"][1].content
        assert "1. Did two." in digest_prompt

        block = await manager.load_context("backend", "shop")
        assert "**Project Context:**\nShop runs FastAPI with tests." in block

    @pytest.mark.asyncio
    async def test_load_context_swallows_store_errors(self):
        class BrokenStore:
            async def recent_memories(self, *args, **kwargs):
                raise PersistenceError("db locked")

        manager = MemoryManager(BrokenStore())
        assert await manager.load_context("backend", "shop") == ""

    @pytest.mark.asyncio
    async def test_lessons_injected_without_project(self, database):
        store = MemoryStore(database)
        manager = MemoryManager(store)
        memory_id = await store.save_memory("devops", "Restart nginx with reload, never stop")
        await manager.promote_to_lesson(memory_id)

        block = await manager.load_context("devops")
        assert "**Permanent Lessons:**" in block
        assert "Restart nginx with reload" in block
