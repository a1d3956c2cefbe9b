"""
Project Registry
================

Projects and their declared stacks. When a task names a project but
carries no stack of its own, the orchestrator looks the stack up here so
routing boosts and prompt snippets still apply.

    store = ProjectStore(database)
    await store.create_project("Shop", project_id="shop", stack=StackConfig(frontend="React+Vite"))
    stack = await store.get_stack("shop")
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crewforge.db import Database, Project
from crewforge.errors import PersistenceError
from crewforge.stacks import StackConfig


def stack_from_record(project: Project) -> StackConfig:
    return StackConfig(**(project.stack or {}))


class ProjectStore:
    """Database access for projects."""

    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.database.session() as session:
                yield session
        except SQLAlchemyError as e:
            raise PersistenceError(f"Project store operation failed: {e}") from e

    async def get_project(self, project_id: str) -> Optional[Project]:
        async with self._session() as session:
            return await session.get(Project, project_id)

    async def get_stack(self, project_id: str) -> Optional[StackConfig]:
        """The project's stack, or None when the project does not exist."""
        project = await self.get_project(project_id)
        if project is None:
            return None
        return stack_from_record(project)

    async def list_projects(self) -> List[Project]:
        """All projects, newest first."""
        async with self._session() as session:
            result = await session.execute(
                select(Project).order_by(Project.created_at.desc(), Project.name)
            )
            return list(result.scalars().all())

    async def create_project(
        self,
        name: str,
        *,
        project_id: Optional[str] = None,
        description: Optional[str] = None,
        stack: Optional[StackConfig] = None,
    ) -> Project:
        """
        Create a project.

        Raises:
            PersistenceError: if the id is already taken or the write fails
        """
        project = Project(
            name=name,
            description=description,
            stack=stack.model_dump(exclude_none=True) if stack else {},
        )
        if project_id:
            project.id = project_id
        async with self._session() as session:
            session.add(project)
            await session.commit()
        return project

    async def update_stack(self, project_id: str, stack: StackConfig) -> Optional[StackConfig]:
        """Merge the given categories into the stored stack. None if the project is unknown."""
        async with self._session() as session:
            project = await session.get(Project, project_id)
            if project is None:
                return None
            merged = {**(project.stack or {}), **stack.model_dump(exclude_none=True)}
            project.stack = merged
            await session.commit()
            return StackConfig(**merged)

    async def delete_project(self, project_id: str) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(Project).where(Project.id == project_id))
            await session.commit()
            return result.rowcount > 0
