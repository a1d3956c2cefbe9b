"""
Task & Plan Models
==================

Pydantic models for the data that flows through the pipeline:

- TaskRequest: a submitted request (validated before any planning)
- Plan / PlanStep: the structured output of the planning stage

Plans accept the camelCase keys the reasoning model is asked to emit
(``taskSummary``, ``riskLevel``, ``requiresApproval``, ``stepNumber``).
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from crewforge.errors import TaskValidationError
from crewforge.risk import RiskLevel
from crewforge.stacks import StackConfig

MAX_REQUEST_LENGTH = 2000


class TaskRequest(BaseModel):
    """A submitted task. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_request: str = Field(min_length=1, max_length=MAX_REQUEST_LENGTH)
    target_id: Optional[str] = None
    project_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    stack: Optional[StackConfig] = None

    @field_validator("user_request")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("user_request must not be blank")
        return value

    @classmethod
    def create(cls, **data: Any) -> "TaskRequest":
        """Build a task, raising TaskValidationError on malformed input."""
        try:
            return cls(**data)
        except ValidationError as e:
            raise TaskValidationError(_summarize_validation(e)) from e


class PlanStep(BaseModel):
    """One ordered step of a plan. No tool means a generation step."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    step_number: int = Field(alias="stepNumber")
    action: str
    tool: Optional[str] = None
    args: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""

    @field_validator("tool", mode="before")
    @classmethod
    def _empty_tool_is_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and value.strip().lower() in ("", "null", "none"):
            return None
        return value

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _null_reasoning(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_generation(self) -> bool:
        return self.tool is None


class Plan(BaseModel):
    """Structured, ordered plan produced for one task."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task_summary: str = Field(alias="taskSummary", min_length=1)
    steps: List[PlanStep] = Field(default_factory=list)
    risk_level: RiskLevel = Field(default=RiskLevel.LOW, alias="riskLevel")
    requires_approval: bool = Field(default=False, alias="requiresApproval")

    @field_validator("risk_level", mode="before")
    @classmethod
    def _upper_risk(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used in prompts and the CLI."""
        return self.model_dump(mode="json", by_alias=True)


def _summarize_validation(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "task"
        problems.append(f"{location}: {item.get('msg', 'invalid')}")
    return "Invalid task: " + "; ".join(problems)
