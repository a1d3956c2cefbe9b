"""
Agent Activity
==============

Persists each role handler's record, status transitions and activity log
events. Everything here is best-effort: a database failure is logged and
never interrupts the task that triggered it.
"""

import logging
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from crewforge.db import AgentLog, AgentRecord, Database

logger = logging.getLogger(__name__)


class AgentStatus(StrEnum):
    IDLE = "IDLE"
    THINKING = "THINKING"
    EXECUTING = "EXECUTING"
    WAITING = "WAITING"
    ERROR = "ERROR"


class LogType(StrEnum):
    REASONING = "REASONING"
    EXECUTION = "EXECUTION"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    SECURITY = "SECURITY"
    INFO = "INFO"


_LOG_LEVELS = {
    LogType.ERROR: logging.ERROR,
    LogType.SECURITY: logging.WARNING,
}


class AgentActivity:
    """
    Status and activity log for one role handler.

    Args:
        database: The shared Database (None disables persistence)
        role: Role name, used as the unique agent name
        agent_type: Stored agent type, e.g. "DEVOPS"
        capabilities: Capability tags stored on first creation
    """

    def __init__(
        self,
        database: Optional[Database],
        role: str,
        agent_type: str,
        capabilities: Optional[List[str]] = None,
    ):
        self.database = database
        self.role = role
        self.agent_type = agent_type
        self.capabilities = list(capabilities or [])
        self.agent_id: Optional[str] = None
        self.status = AgentStatus.IDLE
        self._logger = logging.getLogger(f"crewforge.agent.{role}")

    async def initialize(self) -> None:
        """Load or create the agent record."""
        if self.database is None or self.agent_id is not None:
            return
        try:
            async with self.database.session() as session:
                result = await session.execute(select(AgentRecord).where(AgentRecord.name == self.role))
                record = result.scalar_one_or_none()
                if record is None:
                    record = AgentRecord(
                        name=self.role,
                        agent_type=self.agent_type,
                        capabilities=self.capabilities,
                        status=AgentStatus.IDLE,
                    )
                    session.add(record)
                    await session.commit()
                self.agent_id = record.id
        except SQLAlchemyError as e:
            logger.warning("Could not load agent record for %s: %s", self.role, e)

    async def model_overrides(self) -> Dict[str, Any]:
        """Per-agent model settings stored on the agent record."""
        if self.database is None or self.agent_id is None:
            return {}
        try:
            async with self.database.session() as session:
                record = await session.get(AgentRecord, self.agent_id)
                return dict(record.config or {}) if record else {}
        except SQLAlchemyError as e:
            logger.warning("Could not read model config for %s: %s", self.role, e)
            return {}

    async def set_status(self, status: AgentStatus) -> None:
        self.status = status
        if self.database is None or self.agent_id is None:
            return
        try:
            async with self.database.session() as session:
                await session.execute(
                    update(AgentRecord)
                    .where(AgentRecord.id == self.agent_id)
                    .values(status=str(status), last_active_at=datetime.now(timezone.utc))
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("Could not update status for %s: %s", self.role, e)

    async def log(
        self,
        log_type: LogType,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Emit an activity event to the Python logger and the agent_logs table."""
        level = _LOG_LEVELS.get(log_type, logging.INFO)
        self._logger.log(level, "[%s] %s", log_type, message)

        if self.database is None or self.agent_id is None:
            return
        try:
            async with self.database.session() as session:
                session.add(AgentLog(
                    agent_id=self.agent_id,
                    type=str(log_type),
                    level=logging.getLevelName(level),
                    message=message,
                    metadata_json=metadata or {},
                    tags=[self.role, str(log_type).lower()],
                ))
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("Could not write activity log for %s: %s", self.role, e)


async def set_agent_model_config(database: Database, role: str, config: Dict[str, Any]) -> bool:
    """Merge model settings into a role's agent record. Returns False if unknown."""
    async with database.session() as session:
        result = await session.execute(select(AgentRecord).where(AgentRecord.name == role))
        record = result.scalar_one_or_none()
        if record is None:
            return False
        record.config = {**(record.config or {}), **config}
        await session.commit()
        return True
