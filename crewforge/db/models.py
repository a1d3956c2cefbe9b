"""
Database Models for CrewForge
=============================

SQLAlchemy models for agent memory, project digests, projects, agent
records and agent activity logs.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

MEMORY_CONTENT_LIMIT = 2000


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


class AgentMemory(Base):
    """A compressed note about past work (SHORT_TERM) or a durable lesson (LESSON)."""
    __tablename__ = "agent_memories"
    __table_args__ = (
        Index("ix_agent_memories_role_project_type", "agent_role", "project_id", "memory_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_role: Mapped[str] = mapped_column(String(50))
    content: Mapped[str] = mapped_column(Text)
    memory_type: Mapped[str] = mapped_column(String(20), default="SHORT_TERM")  # SHORT_TERM, LESSON
    importance: Mapped[int] = mapped_column(Integer, default=0)  # 0-100
    project_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    task_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ProjectSummary(Base):
    """Rolling digest of a project's work, plus the completed-task counter."""
    __tablename__ = "project_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    content: Mapped[str] = mapped_column(Text, default="")
    task_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Project(Base):
    """A project and its declared technology stack."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stack: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)  # StackConfig fields
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AgentRecord(Base):
    """One row per role handler; holds status and per-agent model overrides."""
    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    agent_type: Mapped[str] = mapped_column(String(20))  # DEVOPS, BACKEND, QA, FRONTEND
    status: Mapped[str] = mapped_column(String(20), default="IDLE")  # IDLE, THINKING, EXECUTING, WAITING, ERROR
    capabilities: Mapped[List[str]] = mapped_column(JSON, default=list)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    last_active_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    logs: Mapped[List["AgentLog"]] = relationship(back_populates="agent", cascade="all, delete-orphan")


class AgentLog(Base):
    """An activity event emitted by a role handler."""
    __tablename__ = "agent_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[str] = mapped_column(ForeignKey("agents.id"), index=True)
    type: Mapped[str] = mapped_column(String(20))  # REASONING, EXECUTION, SUCCESS, ERROR, SECURITY, INFO
    level: Mapped[str] = mapped_column(String(10), default="INFO")
    message: Mapped[str] = mapped_column(Text)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    agent: Mapped["AgentRecord"] = relationship(back_populates="logs")
