"""
Rich Output Utilities
=====================

Terminal output for CrewForge using the Rich library: one themed console,
status helpers, and renderers for risk assessments, plans and step results.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

if TYPE_CHECKING:
    from crewforge.models import Plan
    from crewforge.security import RiskAssessment


# =============================================================================
# Color Scheme & Theme
# =============================================================================

@dataclass(frozen=True)
class CrewForgeColors:
    """CrewForge color palette using hex for truecolor terminal support."""
    ink: str = "#E6E6E6"       # primary text
    dim: str = "#9AA4B2"       # muted text
    forge: str = "#F59E0B"     # warm accent
    crew: str = "#22D3EE"      # cool accent
    steel: str = "#94A3B8"     # secondary accent
    ok: str = "#22C55E"        # success green
    warn: str = "#FBBF24"      # warning yellow
    err: str = "#EF4444"       # error red


def crewforge_theme(colors: CrewForgeColors = CrewForgeColors()) -> Theme:
    """
    Rich Theme for the CrewForge CLI.

    Style names are semantic so you can use them everywhere:
      console.print("...", style="cf.ok")
    """
    return Theme(
        {
            "cf.border": f"{colors.crew}",
            "cf.accent": f"bold {colors.forge}",
            "cf.muted": f"{colors.dim}",
            "cf.text": f"{colors.ink}",

            # Status
            "cf.ok": f"bold {colors.ok}",
            "cf.warn": f"bold {colors.warn}",
            "cf.err": f"bold {colors.err}",
            "cf.info": f"{colors.crew}",

            # Data display
            "cf.key": f"{colors.steel}",
            "cf.value": f"{colors.ink}",
            "cf.number": f"bold {colors.forge}",
            "cf.timestamp": f"{colors.dim}",

            # Risk levels
            "cf.risk.low": f"{colors.ok}",
            "cf.risk.medium": f"{colors.warn}",
            "cf.risk.high": f"bold {colors.forge}",
            "cf.risk.critical": f"bold {colors.err}",

            # Roles
            "cf.role": f"bold {colors.crew}",

            "cf.table.header": f"bold {colors.crew}",
        }
    )


# =============================================================================
# Unicode / ASCII Fallbacks
# =============================================================================

def _can_use_unicode() -> bool:
    """Check if the terminal can handle Unicode characters."""
    if os.name == "nt":
        try:
            encoding = sys.stdout.encoding or "utf-8"
            "✓✗•".encode(encoding)
            return True
        except (UnicodeEncodeError, LookupError, AttributeError):
            return False
    return True


_UNICODE_ICONS = {
    "check": "✓",
    "cross": "✗",
    "blocked": "⛔",
    "warning": "⚠️",
    "info": "ℹ",
    "bullet": "•",
    "arrow_right": "→",
    "shield": "\U0001F6E1",
}

_ASCII_ICONS = {
    "check": "[OK]",
    "cross": "[X]",
    "blocked": "[BLOCKED]",
    "warning": "[!]",
    "info": "[i]",
    "bullet": "-",
    "arrow_right": "->",
    "shield": "[#]",
}

_ICONS = _UNICODE_ICONS if _can_use_unicode() else _ASCII_ICONS


def icon(name: str) -> str:
    """Get an icon by name, using ASCII fallback if needed."""
    return _ICONS.get(name, "")


# =============================================================================
# Global Console Instance
# =============================================================================

console = Console(theme=crewforge_theme())


# =============================================================================
# Basic Message Functions
# =============================================================================

def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[cf.ok]{icon('check')} {message}[/]")


def print_error(message: str) -> None:
    """Print an error message with X."""
    console.print(f"[cf.err]{icon('cross')} {message}[/]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[cf.warn]{icon('warning')} {message}[/]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[cf.info]{icon('info')} {message}[/]")


def print_muted(message: str) -> None:
    """Print muted/secondary text."""
    console.print(f"[cf.muted]{message}[/]")


def print_header(title: str, style: str = "cf.accent") -> None:
    """Print a prominent section header with rule lines."""
    console.print()
    console.print(Rule(f"[{style}]{title}[/]", style=style))
    console.print()


def print_json_data(data: Any, *, title: Optional[str] = None) -> None:
    """Print JSON data with syntax highlighting."""
    syntax = Syntax(json.dumps(data, indent=2, default=str), "json", theme="monokai")
    if title:
        console.print(Panel(syntax, title=f"[bold]{title}[/]", border_style="cf.border"))
    else:
        console.print(syntax)


def create_table(
    *,
    title: Optional[str] = None,
    columns: Optional[List[str]] = None,
    show_header: bool = True,
) -> Table:
    """Create a styled Rich Table with the CrewForge theme."""
    table = Table(
        title=title,
        show_header=show_header,
        header_style="cf.table.header",
        border_style="cf.border",
        title_style="cf.accent",
    )
    for col in columns or []:
        table.add_column(col)
    return table


# =============================================================================
# Pipeline Displays
# =============================================================================

def risk_style(level: str) -> str:
    """Theme style for a risk level name."""
    return f"cf.risk.{level.lower()}"


def print_assessment(assessment: "RiskAssessment") -> None:
    """Render a risk assessment as a panel."""
    style = risk_style(assessment.risk_level)
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cf.key")
    table.add_column("Value", style="cf.value")

    table.add_row("Command", Text(assessment.sanitized_command or "(empty)"))
    table.add_row("Risk", f"[{style}]{assessment.risk_level}[/] ([cf.number]{assessment.risk_score}[/])")
    table.add_row("Allowed", "yes" if assessment.is_allowed else "[cf.err]no[/]")
    table.add_row("Approval", "required" if assessment.requires_approval else "not required")
    if assessment.block_reason:
        table.add_row("Reason", Text(assessment.block_reason))
    for pattern in assessment.detected_patterns:
        table.add_row("Pattern", Text(pattern))

    title_icon = icon("shield") if assessment.is_allowed else icon("blocked")
    console.print(Panel(
        table,
        title=f"[{style}]{title_icon} Risk Assessment[/]",
        border_style=style,
    ))


def print_plan(plan: "Plan", role: Optional[str] = None) -> None:
    """Render a plan as a table of steps."""
    title = f"Plan: {plan.task_summary}"
    if role:
        title = f"[{role.upper()}] {title}"
    table = create_table(title=title, columns=["#", "Action", "Tool", "Reasoning"])
    for step in plan.steps:
        table.add_row(
            str(step.step_number),
            Text(step.action),
            step.tool or "[cf.muted]generate[/]",
            Text(step.reasoning[:120]),
        )
    console.print(table)
    style = risk_style(plan.risk_level)
    approval = " - approval required" if plan.requires_approval else ""
    console.print(f"  [cf.key]Risk:[/] [{style}]{plan.risk_level}[/]{approval}")


def print_results(results: Sequence[str], *, max_chars: int = 2000) -> None:
    """Render step results, flagging ERROR and BLOCKED entries."""
    for i, result in enumerate(results, 1):
        if result.startswith("ERROR:") or result.startswith("BLOCKED:"):
            border = "cf.err"
        else:
            border = "cf.border"
        body = result if len(result) <= max_chars else result[:max_chars] + "\n..."
        console.print(Panel(Text(body), title=f"Step {i}", border_style=border))


def print_key_values(data: Dict[str, Any], *, title: Optional[str] = None) -> None:
    """Print multiple key-value pairs in a clean table format."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cf.key")
    table.add_column("Value", style="cf.value")
    for key, value in data.items():
        table.add_row(key, Text(str(value)))
    if title:
        console.print(Panel(table, title=f"[bold]{title}[/]", border_style="cf.border"))
    else:
        console.print(table)


# =============================================================================
# Logging Integration
# =============================================================================

def setup_rich_logging(level: int = logging.INFO) -> None:
    """
    Configure Python logging to use Rich for log output.

    Usage:
        setup_rich_logging()
        logging.info("This will be pretty!")
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )],
        force=True,
    )
