"""
Error Taxonomy
==============

Exceptions raised across the pipeline. Only ``ProviderError`` raised while
planning is fatal for a task; everything else is absorbed by the component
that owns it (tool failures become step results, persistence failures are
logged and swallowed).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from crewforge.security import RiskAssessment


class CrewForgeError(Exception):
    """Base class for all CrewForge errors."""


class TaskValidationError(CrewForgeError):
    """A submitted task failed validation before planning."""


class PolicyBlocked(CrewForgeError):
    """The risk classifier refused a command."""

    def __init__(self, assessment: "RiskAssessment"):
        self.assessment = assessment
        super().__init__(self._format(assessment))

    @staticmethod
    def _format(assessment: "RiskAssessment") -> str:
        patterns = ", ".join(assessment.detected_patterns) or "none"
        reason = assessment.block_reason or "blocked by policy"
        return (
            f"Security blocked ({assessment.risk_level}, score {assessment.risk_score}): "
            f"{reason} [patterns: {patterns}]"
        )


class ToolFailure(CrewForgeError):
    """A tool could not complete its work."""

    def __init__(self, tool: str, message: str):
        self.tool = tool
        super().__init__(message)


class ProviderError(CrewForgeError):
    """The reasoning provider failed, timed out, or is not configured."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class PersistenceError(CrewForgeError):
    """A database read or write failed."""
