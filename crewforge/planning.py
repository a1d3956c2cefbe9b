"""
Planning Stage
==============

Turns a task into a structured Plan with one reasoning call.

The model is asked for a single JSON object, but replies come back as
pure JSON, fenced JSON, or JSON buried in prose. ``extract_json_object``
recovers the object with a depth-balanced brace scan that honors string
quotes and escapes. Anything that still fails to parse or validate is
replaced by a one-step generation plan, so a task always has something to
execute.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from crewforge.models import Plan, PlanStep, TaskRequest
from crewforge.risk import RiskLevel
from crewforge.tools.base import Tool

logger = logging.getLogger(__name__)

FALLBACK_ACTION = "generate deliverable from request"
FALLBACK_SUMMARY = "Generate deliverable"
FALLBACK_SUMMARY_CHARS = 200
FALLBACK_REASONING_CHARS = 2000

_LEADING_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```\s*$")

PLAN_CONTRACT = """Respond ONLY with valid JSON in this exact format:
{
  "taskSummary": "brief summary",
  "riskLevel": "LOW|MEDIUM|HIGH|CRITICAL",
  "requiresApproval": false,
  "steps": [
    {
      "stepNumber": 1,
      "action": "what to do",
      "tool": "tool-name or null",
      "args": {},
      "reasoning": "why"
    }
  ]
}"""


# =============================================================================
# Prompt assembly
# =============================================================================

def format_tool_list(tools: Sequence[Tool]) -> str:
    if not tools:
        return "(none - use \"tool\": null; each step produces its deliverable directly)"
    return "\n".join(f"- {tool.name}: {tool.description}" for tool in tools)


def build_planning_prompt(
    role: str,
    task: TaskRequest,
    tools: Sequence[Tool],
    memory_block: str = "",
) -> str:
    """User message for the planning call."""
    lines = [
        f"You are a {role} agent. Analyze this task and produce a JSON plan.",
        "",
        f"**Task:** {task.user_request}",
    ]
    if task.target_id:
        lines.append(f"**Target host:** {task.target_id}")
    if task.metadata:
        lines.append(f"**Context:** {json.dumps(task.metadata, default=str)}")
    if memory_block:
        lines.extend(["", memory_block])
    lines.extend([
        "",
        "**Available Tools:**",
        format_tool_list(tools),
        "",
        PLAN_CONTRACT,
    ])
    return "\n".join(lines)


# =============================================================================
# Tolerant JSON extraction
# =============================================================================

def strip_fences(text: str) -> str:
    """Remove a leading ```lang marker and a trailing ``` marker."""
    text = _LEADING_FENCE.sub("", text, count=1)
    return _TRAILING_FENCE.sub("", text, count=1).strip()


def scan_balanced_object(text: str, start: int) -> Optional[str]:
    """
    Return the substring from ``text[start]`` (a ``{``) to its matching ``}``.

    Braces inside string literals are ignored; backslash escapes inside
    strings are honored. Returns None if the object never closes.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def _load_object(candidate: Optional[str]) -> Optional[Dict[str, Any]]:
    if candidate is None:
        return None
    try:
        value = json.loads(candidate, strict=False)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """
    Recover the first JSON object from a model reply.

    1. Strip fence markers; if the rest starts with ``{``, scan from there.
    2. Otherwise (or if that fails) scan from the first ``{`` anywhere.
    """
    text = strip_fences(raw)
    if text.startswith("{"):
        found = _load_object(scan_balanced_object(text, 0))
        if found is not None:
            return found

    first_brace = text.find("{")
    if first_brace == -1:
        return None
    return _load_object(scan_balanced_object(text, first_brace))


# =============================================================================
# Plan construction
# =============================================================================

def fallback_plan(raw: str) -> Plan:
    """One tool-less generation step built from the raw reply."""
    raw = raw or ""
    summary = raw[:FALLBACK_SUMMARY_CHARS] if raw.strip() else FALLBACK_SUMMARY
    return Plan(
        task_summary=summary,
        steps=[PlanStep(
            step_number=1,
            action=FALLBACK_ACTION,
            tool=None,
            reasoning=raw[:FALLBACK_REASONING_CHARS],
        )],
        risk_level=RiskLevel.LOW,
        requires_approval=False,
    )


def parse_plan(raw: str) -> Plan:
    """Parse and validate a reply into a Plan, degrading to ``fallback_plan``."""
    data = extract_json_object(raw or "")
    if data is None:
        logger.warning("No JSON object found in planning reply; using fallback plan")
        return fallback_plan(raw)
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        logger.warning("Planning reply failed validation (%d errors); using fallback plan", e.error_count())
        return fallback_plan(raw)


def direct_generation_plan(task: TaskRequest) -> Plan:
    """Plan used by roles that skip the planning call: generate the deliverable directly."""
    return Plan(
        task_summary=task.user_request[:FALLBACK_SUMMARY_CHARS],
        steps=[PlanStep(
            step_number=1,
            action=task.user_request,
            tool=None,
            reasoning="Generate the complete deliverable based on the user request.",
        )],
        risk_level=RiskLevel.LOW,
        requires_approval=False,
    )
