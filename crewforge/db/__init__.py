"""
Database Package
================

Exports key database components.
"""

from crewforge.db.models import (
    Base,
    AgentMemory,
    ProjectSummary,
    Project,
    AgentRecord,
    AgentLog,
)
from crewforge.db.connection import Database, init_db
