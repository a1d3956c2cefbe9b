"""
Shared fixtures: a scripted reasoning client, fake tools and a temporary
SQLite database.
"""

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import pytest
import pytest_asyncio

from crewforge.config import CrewForgeConfig
from crewforge.db import init_db
from crewforge.errors import ProviderError
from crewforge.reasoning import ChatMessage, ModelConfig, ModelResponse


class FakeReasoningClient:
    """Replies with scripted strings in order; an Exception entry is raised instead."""

    def __init__(self, replies: Sequence[Union[str, Exception]] = ()):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, config: ModelConfig, messages: List[ChatMessage]) -> ModelResponse:
        self.calls.append({"config": config, "messages": list(messages)})
        if not self.replies:
            raise ProviderError("no scripted reply left", "FAKE")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return ModelResponse(content=reply, provider="FAKE", model=config.model or "fake-model")


class RecordingTool:
    """Tool that records its arguments and returns a fixed value."""

    def __init__(self, name: str, result: Any = "ok", error: Optional[Exception] = None):
        self.name = name
        self.description = f"{name} test tool"
        self.result = result
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, args: Dict[str, Any]) -> Any:
        self.calls.append(dict(args))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    return CrewForgeConfig(workspace_dir=str(temp_dir), db_path="crewforge.db")


@pytest_asyncio.fixture
async def database(temp_dir):
    db = await init_db(temp_dir / "test.db")
    yield db
    await db.dispose()
