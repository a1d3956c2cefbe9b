"""
Tests for the Planning Stage
============================

Prompt assembly, tolerant JSON extraction and the fallback plan.
"""

import json

import pytest

from crewforge.models import Plan, TaskRequest
from crewforge.planning import (
    FALLBACK_ACTION,
    FALLBACK_SUMMARY,
    build_planning_prompt,
    direct_generation_plan,
    extract_json_object,
    parse_plan,
    scan_balanced_object,
    strip_fences,
)
from crewforge.risk import RiskLevel
from crewforge.stacks import StackConfig, build_system_prompt, format_stack_summary
from crewforge.tools.file_tools import FileReadTool


PLAN_JSON = {
    "taskSummary": "Create users endpoint",
    "riskLevel": "medium",
    "requiresApproval": False,
    "steps": [
        {"stepNumber": 1, "action": "write route", "tool": "file-write",
         "args": {"filePath": "app.py", "content": "x = '{'"}, "reasoning": "entry point"},
        {"stepNumber": 2, "action": "explain", "tool": None, "args": None, "reasoning": None},
    ],
}


# =============================================================================
# Extraction
# =============================================================================

class TestExtractJsonObject:
    """Tests for extract_json_object and its helpers."""

    def test_pure_json(self):
        assert extract_json_object(json.dumps(PLAN_JSON)) == PLAN_JSON

    def test_fenced_json(self):
        raw = "```json\n" + json.dumps(PLAN_JSON) + "\n```"
        assert extract_json_object(raw) == PLAN_JSON

    def test_json_inside_prose(self):
        raw = "Here is my plan:\n```json\n" + json.dumps(PLAN_JSON) + "\n```\nLet me know!"
        assert extract_json_object(raw) == PLAN_JSON

    def test_trailing_text_after_object(self):
        raw = json.dumps(PLAN_JSON) + "\n\nThat's all {not json}"
        assert extract_json_object(raw) == PLAN_JSON

    def test_no_json(self):
        assert extract_json_object("I cannot help with that.") is None

    def test_unbalanced_object(self):
        assert extract_json_object('{"taskSummary": "x"') is None

    def test_scan_ignores_braces_in_strings(self):
        text = 'x {"a": "}{", "b": "\\"}"} tail'
        found = scan_balanced_object(text, text.index("{"))
        assert json.loads(found) == {"a": "}{", "b": '"}'}

    def test_strip_fences(self):
        assert strip_fences("```python\n{}\n```") == "{}"
        assert strip_fences("{}") == "{}"


# =============================================================================
# parse_plan
# =============================================================================

class TestParsePlan:
    """Tests for parse_plan and the fallback plan."""

    def test_valid_plan(self):
        plan = parse_plan("Sure!\n" + json.dumps(PLAN_JSON))
        assert plan.task_summary == "Create users endpoint"
        assert plan.risk_level == RiskLevel.MEDIUM
        assert [s.step_number for s in plan.steps] == [1, 2]
        assert plan.steps[0].tool == "file-write"
        assert plan.steps[0].args["content"] == "x = '{'"
        assert plan.steps[1].is_generation
        assert plan.steps[1].args == {}
        assert plan.steps[1].reasoning == ""

    def test_null_string_tool_is_generation(self):
        data = dict(PLAN_JSON, steps=[{"stepNumber": 1, "action": "a", "tool": "null", "reasoning": "r"}])
        plan = parse_plan(json.dumps(data))
        assert plan.steps[0].tool is None

    def test_prose_falls_back(self):
        raw = "I would first inspect the server, then restart nginx."
        plan = parse_plan(raw)
        assert plan.task_summary == raw
        assert len(plan.steps) == 1
        assert plan.steps[0].tool is None
        assert plan.steps[0].action == FALLBACK_ACTION
        assert plan.steps[0].reasoning == raw
        assert plan.risk_level == RiskLevel.LOW
        assert plan.requires_approval is False

    def test_blank_reply_falls_back(self):
        plan = parse_plan("   ")
        assert plan.task_summary == FALLBACK_SUMMARY

    def test_invalid_schema_falls_back(self):
        plan = parse_plan('{"steps": "not a list"}')
        assert plan.steps[0].action == FALLBACK_ACTION

    def test_fallback_clips_long_reply(self):
        raw = "x" * 5000
        plan = parse_plan(raw)
        assert len(plan.task_summary) == 200
        assert len(plan.steps[0].reasoning) == 2000

    def test_wire_round_keys(self):
        wire = parse_plan(json.dumps(PLAN_JSON)).to_wire()
        assert wire["taskSummary"] == "Create users endpoint"
        assert wire["steps"][0]["stepNumber"] == 1


# =============================================================================
# Prompt assembly
# =============================================================================

class TestPlanningPrompt:
    """Tests for build_planning_prompt and direct plans."""

    def test_prompt_contents(self, tmp_path):
        task = TaskRequest(user_request="Add login", target_id="prod-1", metadata={"ticket": 7})
        prompt = build_planning_prompt("backend", task, [FileReadTool(tmp_path)], "## What I Remember\n- x\n---")
        assert "You are a backend agent" in prompt
        assert "**Task:** Add login" in prompt
        assert "prod-1" in prompt
        assert '"ticket": 7' in prompt
        assert "## What I Remember" in prompt
        assert "- file-read:" in prompt
        assert '"taskSummary"' in prompt

    def test_prompt_without_tools(self):
        prompt = build_planning_prompt("ux", TaskRequest(user_request="hero section"), [])
        assert "(none" in prompt

    def test_direct_generation_plan(self):
        task = TaskRequest(user_request="Build a pricing page")
        plan = direct_generation_plan(task)
        assert isinstance(plan, Plan)
        assert len(plan.steps) == 1
        assert plan.steps[0].is_generation
        assert plan.steps[0].action == "Build a pricing page"


class TestSystemPrompt:
    """Tests for the stack-aware system prompt."""

    def test_includes_role_stack_snippets(self):
        stack = StackConfig(backend="FastAPI", frontend="React+Vite")
        prompt = build_system_prompt("backend", stack)
        assert "## Tech Stack for This Project" in prompt
        assert "FastAPI" in prompt
        # frontend is not a backend category
        assert "React + Vite" not in prompt

    def test_no_stack_message(self):
        prompt = build_system_prompt("qa")
        assert "No specific stack configured" in prompt

    def test_extra_rules_appended(self):
        prompt = build_system_prompt("ux", None, "Use inline CSS")
        assert prompt.rstrip().endswith("Use inline CSS")

    def test_format_stack_summary(self):
        assert format_stack_summary(None) == "No stack configured"
        assert format_stack_summary(StackConfig(frontend="HTML", database="PostgreSQL")) == "HTML · PostgreSQL"

    @pytest.mark.parametrize("role", ["devops", "backend", "qa", "ux"])
    def test_every_role_has_persona(self, role):
        assert build_system_prompt(role).strip()
