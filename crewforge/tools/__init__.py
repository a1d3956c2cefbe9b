"""
Tools Package
=============

Capabilities that plan steps can invoke:

- file-read / file-write: workspace-confined file access
- run-tests: pytest / vitest / playwright in the workspace
- ssh-execute / docker-run: commands on a configured remote host

``build_tool_registry`` constructs the full set once; each role handler
receives the subset its role is allowed to use.
"""

from typing import Optional

from crewforge.config import CrewForgeConfig
from crewforge.tools.base import Tool, ToolRegistry, require_str
from crewforge.tools.docker import DockerTemplates, generate_compose_file
from crewforge.tools.file_tools import FileReadTool, FileWriteTool, resolve_in_workspace
from crewforge.tools.ssh import CommandResult, DockerRunTool, SSHConnectionPool, SSHExecuteTool
from crewforge.tools.test_runner import TestRunnerTool, build_test_command


def build_tool_registry(
    config: CrewForgeConfig,
    pool: Optional[SSHConnectionPool] = None,
) -> ToolRegistry:
    """Every built-in tool, wired to the configured workspace and host inventory."""
    pool = pool or SSHConnectionPool()
    workspace = config.workspace
    return ToolRegistry([
        FileReadTool(workspace),
        FileWriteTool(workspace),
        TestRunnerTool(workspace, timeout=config.tool_timeout),
        SSHExecuteTool(pool, config.targets, timeout=config.tool_timeout),
        DockerRunTool(pool, config.targets, timeout=config.tool_timeout),
    ])


__all__ = [
    "CommandResult",
    "DockerRunTool",
    "DockerTemplates",
    "FileReadTool",
    "FileWriteTool",
    "SSHConnectionPool",
    "SSHExecuteTool",
    "TestRunnerTool",
    "Tool",
    "ToolRegistry",
    "build_test_command",
    "build_tool_registry",
    "generate_compose_file",
    "require_str",
    "resolve_in_workspace",
]
