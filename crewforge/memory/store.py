"""
Memory Store
============

Low-level CRUD for AgentMemory and ProjectSummary rows. No reasoning
calls here, only database reads and writes.

SQLAlchemy failures are re-raised as ``PersistenceError`` so callers can
decide whether to swallow them (the memory manager always does).
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import StrEnum
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crewforge.db import AgentMemory, Database, ProjectSummary
from crewforge.db.models import MEMORY_CONTENT_LIMIT
from crewforge.errors import PersistenceError

DEFAULT_SHORT_TERM_CAP = 30


class MemoryType(StrEnum):
    SHORT_TERM = "SHORT_TERM"
    LESSON = "LESSON"


def _project_filter(project_id: Optional[str]):
    if project_id is None:
        return AgentMemory.project_id.is_(None)
    return AgentMemory.project_id == project_id


class MemoryStore:
    """
    Database access for agent memories and project summaries.

    Args:
        database: The shared Database
        short_term_cap: SHORT_TERM notes kept per (role, project)
    """

    def __init__(self, database: Database, short_term_cap: int = DEFAULT_SHORT_TERM_CAP):
        self.database = database
        self.short_term_cap = short_term_cap

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.database.session() as session:
                yield session
        except SQLAlchemyError as e:
            raise PersistenceError(f"Memory store operation failed: {e}") from e

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def recent_memories(
        self,
        agent_role: str,
        project_id: Optional[str] = None,
        limit: int = 5,
    ) -> List[AgentMemory]:
        """Most important, then newest, SHORT_TERM notes for a role."""
        query = select(AgentMemory).where(
            AgentMemory.agent_role == agent_role,
            AgentMemory.memory_type == MemoryType.SHORT_TERM,
        )
        if project_id:
            query = query.where(AgentMemory.project_id == project_id)
        query = query.order_by(
            AgentMemory.importance.desc(),
            AgentMemory.created_at.desc(),
            AgentMemory.id.desc(),
        ).limit(limit)

        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def lessons(self, agent_role: str) -> List[AgentMemory]:
        """Every LESSON for a role, most important first."""
        query = (
            select(AgentMemory)
            .where(
                AgentMemory.agent_role == agent_role,
                AgentMemory.memory_type == MemoryType.LESSON,
            )
            .order_by(AgentMemory.importance.desc(), AgentMemory.created_at.desc())
        )
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def project_notes(self, project_id: str, limit: int = 10) -> List[str]:
        """Newest SHORT_TERM note texts for a project, across roles."""
        query = (
            select(AgentMemory.content)
            .where(
                AgentMemory.project_id == project_id,
                AgentMemory.memory_type == MemoryType.SHORT_TERM,
            )
            .order_by(AgentMemory.created_at.desc(), AgentMemory.id.desc())
            .limit(limit)
        )
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def project_summary(self, project_id: str) -> Optional[ProjectSummary]:
        async with self._session() as session:
            result = await session.execute(
                select(ProjectSummary).where(ProjectSummary.project_id == project_id)
            )
            return result.scalar_one_or_none()

    async def list_memories(
        self,
        agent_role: Optional[str] = None,
        project_id: Optional[str] = None,
        memory_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[AgentMemory]:
        """Newest-first listing with optional filters."""
        query = select(AgentMemory)
        if agent_role:
            query = query.where(AgentMemory.agent_role == agent_role)
        if project_id:
            query = query.where(AgentMemory.project_id == project_id)
        if memory_type:
            query = query.where(AgentMemory.memory_type == memory_type)
        query = query.order_by(AgentMemory.created_at.desc(), AgentMemory.id.desc()).limit(limit)

        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    async def save_memory(
        self,
        agent_role: str,
        content: str,
        *,
        project_id: Optional[str] = None,
        task_id: Optional[str] = None,
        memory_type: MemoryType = MemoryType.SHORT_TERM,
        importance: int = 0,
    ) -> int:
        """
        Save a note. SHORT_TERM saves rotate old notes past the cap.

        Returns:
            The new memory id
        """
        memory = AgentMemory(
            agent_role=agent_role,
            content=content[:MEMORY_CONTENT_LIMIT],
            memory_type=str(memory_type),
            importance=max(0, min(100, importance)),
            project_id=project_id,
            task_id=task_id,
            created_at=datetime.now(timezone.utc),
        )
        async with self._session() as session:
            session.add(memory)
            await session.commit()
            memory_id = memory.id

        if memory_type == MemoryType.SHORT_TERM:
            await self.rotate_short_term(agent_role, project_id)
        return memory_id

    async def rotate_short_term(self, agent_role: str, project_id: Optional[str]) -> int:
        """
        Keep only the newest ``short_term_cap`` SHORT_TERM notes for (role, project).

        Concurrent writers may briefly leave more than the cap; the next
        rotation trims them.

        Returns:
            Number of notes deleted
        """
        async with self._session() as session:
            result = await session.execute(
                select(AgentMemory.id)
                .where(
                    AgentMemory.agent_role == agent_role,
                    _project_filter(project_id),
                    AgentMemory.memory_type == MemoryType.SHORT_TERM,
                )
                .order_by(AgentMemory.created_at.desc(), AgentMemory.id.desc())
            )
            ids = list(result.scalars().all())
            stale = ids[self.short_term_cap:]
            if stale:
                await session.execute(delete(AgentMemory).where(AgentMemory.id.in_(stale)))
                await session.commit()
            return len(stale)

    async def increment_task_count(self, project_id: str) -> int:
        """Bump the project's completed-task counter, creating the row if needed."""
        async with self._session() as session:
            result = await session.execute(
                select(ProjectSummary).where(ProjectSummary.project_id == project_id)
            )
            summary = result.scalar_one_or_none()
            if summary is None:
                summary = ProjectSummary(project_id=project_id, content="", task_count=0)
                session.add(summary)
            summary.task_count = (summary.task_count or 0) + 1
            await session.commit()
            return summary.task_count

    async def upsert_project_summary(
        self,
        project_id: str,
        content: str,
        task_count: Optional[int] = None,
    ) -> None:
        """Create or overwrite the project's rolling summary."""
        async with self._session() as session:
            result = await session.execute(
                select(ProjectSummary).where(ProjectSummary.project_id == project_id)
            )
            summary = result.scalar_one_or_none()
            if summary is None:
                summary = ProjectSummary(project_id=project_id, content=content, task_count=task_count or 0)
                session.add(summary)
            else:
                summary.content = content
                if task_count is not None:
                    summary.task_count = task_count
            await session.commit()

    async def promote_to_lesson(self, memory_id: int, importance: int = 100) -> bool:
        """Turn a note into a permanent LESSON. Returns False if it does not exist."""
        async with self._session() as session:
            memory = await session.get(AgentMemory, memory_id)
            if memory is None:
                return False
            memory.memory_type = str(MemoryType.LESSON)
            memory.importance = max(0, min(100, importance))
            await session.commit()
            return True

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def forget(self, memory_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(AgentMemory).where(AgentMemory.id == memory_id))
            await session.commit()
            return result.rowcount > 0

    async def forget_all(
        self,
        agent_role: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> int:
        """Delete every memory matching the filters. At least one filter is required."""
        if not agent_role and not project_id:
            raise ValueError("forget_all needs a role or a project id")
        query = delete(AgentMemory)
        if agent_role:
            query = query.where(AgentMemory.agent_role == agent_role)
        if project_id:
            query = query.where(AgentMemory.project_id == project_id)
        async with self._session() as session:
            result = await session.execute(query)
            await session.commit()
            return result.rowcount
