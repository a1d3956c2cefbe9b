"""
Memory Module
=============

Bounded memory that feeds prior work back into planning.

1. **Short-term notes** - one compressed sentence per completed task,
   capped per (role, project)
2. **Lessons** - notes an operator promoted to permanent status
3. **Project summary** - a rolling digest refreshed every few tasks

Usage:
    from crewforge.memory import MemoryManager

    manager = MemoryManager(store, summarizer)

    # Before planning
    block = await manager.load_context("backend", project_id="shop")

    # After execution
    await manager.record_task("backend", task, plan, results)

Every failure on these two paths is logged and swallowed.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from crewforge.db import AgentMemory
from crewforge.errors import PersistenceError
from crewforge.memory.store import MemoryStore, MemoryType
from crewforge.memory.summarizer import MemorySummarizer
from crewforge.models import Plan, TaskRequest

logger = logging.getLogger(__name__)

MEMORY_HEADER = "## What I Remember"


def format_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    """Human-readable age: "12m ago", "3h ago", "2d ago"."""
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    minutes = max(0, int((now - created_at).total_seconds() // 60))
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def format_memory_block(
    recent: Sequence[AgentMemory],
    project_summary: Optional[str],
    lessons: Sequence[AgentMemory] = (),
    now: Optional[datetime] = None,
) -> str:
    """
    Format memories into a prompt-ready block.

    Order: permanent lessons, project context, recent work. Returns an
    empty string when there is nothing to inject.
    """
    if not recent and not project_summary and not lessons:
        return ""

    parts: List[str] = [MEMORY_HEADER]

    if lessons:
        parts.append("**Permanent Lessons:**")
        parts.extend(f"- {lesson.content}" for lesson in lessons)

    if project_summary:
        parts.append(f"**Project Context:**\n{project_summary}")

    if recent:
        parts.append("**Recent Work:**")
        parts.extend(f"- [{format_age(m.created_at, now)}] {m.content}" for m in recent)

    parts.append("---")
    return "\n".join(parts)


class MemoryManager:
    """
    Read and write paths of the memory subsystem.

    Args:
        store: Database access
        summarizer: Cheap-model summarizer (None falls back to plan summaries)
        recent_limit: SHORT_TERM notes injected into planning
        refresh_interval: Refresh the project summary every N completed tasks
    """

    def __init__(
        self,
        store: MemoryStore,
        summarizer: Optional[MemorySummarizer] = None,
        *,
        recent_limit: int = 5,
        refresh_interval: int = 5,
    ):
        self.store = store
        self.summarizer = summarizer
        self.recent_limit = recent_limit
        self.refresh_interval = refresh_interval

    async def load_context(self, agent_role: str, project_id: Optional[str] = None) -> str:
        """Build the memory block for a planning prompt ("" when empty or on failure)."""
        try:
            recent = await self.store.recent_memories(agent_role, project_id, self.recent_limit)
            lessons = await self.store.lessons(agent_role)
            summary_text = None
            if project_id:
                summary = await self.store.project_summary(project_id)
                summary_text = summary.content if summary and summary.content else None
        except PersistenceError as e:
            logger.warning("Could not load memory for %s: %s", agent_role, e)
            return ""
        return format_memory_block(recent, summary_text, lessons)

    async def record_task(
        self,
        agent_role: str,
        task: TaskRequest,
        plan: Plan,
        results: Sequence[str],
    ) -> Optional[str]:
        """
        Compress a finished task into a SHORT_TERM note and maybe refresh
        the project summary.

        Returns:
            The stored note text, or None if nothing could be stored
        """
        note = await self._summarize(agent_role, task, plan, results)
        try:
            await self.store.save_memory(
                agent_role,
                note,
                project_id=task.project_id,
                task_id=task.task_id,
                memory_type=MemoryType.SHORT_TERM,
            )
        except PersistenceError as e:
            logger.warning("Could not save memory for %s: %s", agent_role, e)
            return None

        if task.project_id:
            await self._maybe_refresh_summary(task.project_id)
        return note

    async def _summarize(
        self,
        agent_role: str,
        task: TaskRequest,
        plan: Plan,
        results: Sequence[str],
    ) -> str:
        if self.summarizer is None:
            return plan.task_summary[:200]
        return await self.summarizer.summarize_task(
            agent_role=agent_role,
            user_request=task.user_request,
            task_summary=plan.task_summary,
            results=results,
        )

    async def _maybe_refresh_summary(self, project_id: str) -> None:
        try:
            task_count = await self.store.increment_task_count(project_id)
            if self.summarizer is None or task_count % self.refresh_interval != 0:
                return
            notes = await self.store.project_notes(project_id, limit=10)
            if not notes:
                return
            current = await self.store.project_summary(project_id)
            digest = await self.summarizer.merge_project_summary(
                current.content if current and current.content else None,
                notes,
            )
            if digest:
                await self.store.upsert_project_summary(project_id, digest, task_count)
        except PersistenceError as e:
            logger.warning("Could not refresh project summary for %s: %s", project_id, e)

    # -------------------------------------------------------------------------
    # Operator operations
    # -------------------------------------------------------------------------

    async def promote_to_lesson(self, memory_id: int, importance: int = 100) -> bool:
        return await self.store.promote_to_lesson(memory_id, importance)

    async def forget(self, memory_id: int) -> bool:
        return await self.store.forget(memory_id)

    async def forget_all(self, agent_role: Optional[str] = None, project_id: Optional[str] = None) -> int:
        return await self.store.forget_all(agent_role, project_id)

    async def list_memories(
        self,
        agent_role: Optional[str] = None,
        project_id: Optional[str] = None,
        memory_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[AgentMemory]:
        return await self.store.list_memories(agent_role, project_id, memory_type, limit)


__all__ = [
    "MemoryManager",
    "MemoryStore",
    "MemorySummarizer",
    "MemoryType",
    "format_age",
    "format_memory_block",
]
