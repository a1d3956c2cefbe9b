"""
Tool Interface
==============

A tool is a named capability a role handler can invoke from a plan step:

    result = await tool.execute({"filePath": "app.py"})

Tools may raise; the execution stage turns any exception into an
``ERROR: ...`` step result. Tools that run a literal command must pass it
through ``crewforge.security.enforce_command_policy`` first.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from crewforge.errors import ToolFailure


@runtime_checkable
class Tool(Protocol):
    name: str
    description: str

    async def execute(self, args: Dict[str, Any]) -> Any:
        ...


def require_str(tool: str, args: Dict[str, Any], *keys: str) -> str:
    """Return the first non-empty string argument among ``keys``."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value
    raise ToolFailure(tool, f"{tool} requires a '{keys[0]}' argument")


class ToolRegistry:
    """Name -> tool lookup for one role handler."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        """A registry holding only the named tools that exist here."""
        return ToolRegistry(self._tools[n] for n in names if n in self._tools)

    def __iter__(self):
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
