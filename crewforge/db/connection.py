"""
Database Connection Manager
===========================

Handles the async connection to the CrewForge SQLite database. A
``Database`` is created once at startup and passed to whatever needs it.
"""

from pathlib import Path
from typing import Union

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from crewforge.db.models import Base


class Database:
    """An async engine plus its session maker."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )

    def session(self) -> AsyncSession:
        """Open a short-lived session (use as ``async with db.session() as s``)."""
        return self.session_maker()

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


async def init_db(db_path: Union[str, Path], *, echo: bool = False) -> Database:
    """
    Initialize the database connection and create tables if they don't exist.

    Args:
        db_path: SQLite file path; parent directories are created.
            ``":memory:"`` gives an in-memory database.
        echo: Log SQL statements

    Returns:
        A ready-to-use Database
    """
    if str(db_path) == ":memory:":
        db_url = "sqlite+aiosqlite:///:memory:"
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        db_url = f"sqlite+aiosqlite:///{path}"

    engine = create_async_engine(db_url, echo=echo)
    database = Database(engine)
    await database.create_tables()
    return database
