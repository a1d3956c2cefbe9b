"""
Workspace File Tools
====================

file-read and file-write, confined to the workspace directory. A path
that resolves outside the workspace (absolute paths, ``..`` traversal,
symlinks pointing out) is refused with ToolFailure.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict

from crewforge.errors import ToolFailure
from crewforge.tools.base import require_str

PATH_KEYS = ("filePath", "file_path", "path")
MAX_READ_BYTES = 1_000_000


def resolve_in_workspace(tool: str, workspace: Path, relative: str) -> Path:
    """Resolve ``relative`` against the workspace and make sure it stays inside."""
    root = workspace.resolve()
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        raise ToolFailure(tool, f"Path escapes the workspace: {relative}")
    return candidate


class FileReadTool:
    name = "file-read"
    description = "Read content of a file in the workspace. Args: { filePath: string }"

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)

    async def execute(self, args: Dict[str, Any]) -> str:
        relative = require_str(self.name, args, *PATH_KEYS)
        path = resolve_in_workspace(self.name, self.workspace, relative)
        if not path.is_file():
            raise ToolFailure(self.name, f"File not found: {relative}")
        if path.stat().st_size > MAX_READ_BYTES:
            raise ToolFailure(self.name, f"File too large to read: {relative}")
        return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")


class FileWriteTool:
    name = "file-write"
    description = "Write content to a file in the workspace. Args: { filePath: string, content: string }"

    def __init__(self, workspace: Path):
        self.workspace = Path(workspace)

    async def execute(self, args: Dict[str, Any]) -> str:
        relative = require_str(self.name, args, *PATH_KEYS)
        content = args.get("content")
        if not isinstance(content, str):
            raise ToolFailure(self.name, "file-write requires a string 'content' argument")

        path = resolve_in_workspace(self.name, self.workspace, relative)
        if path.is_dir():
            raise ToolFailure(self.name, f"Path is a directory: {relative}")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return f"Written {len(content)} chars to {path.relative_to(self.workspace.resolve())}"
