"""
Command-line interface for CrewForge.

Subcommands are split by concern:
- task_cli: run a task, check a command, set per-role model overrides
- memory_cli: inspect and curate agent memories
"""
