"""
Memory Summarizer
=================

Uses the cheapest configured model to compress a completed task into a
one-sentence note, and to merge recent notes into the rolling project
summary.
"""

import logging
from typing import List, Optional, Sequence

from crewforge.errors import ProviderError
from crewforge.reasoning import ChatMessage, ModelConfig, ReasoningClient

logger = logging.getLogger(__name__)

NOTE_CHAR_LIMIT = 200
MAX_RESULTS_IN_PROMPT = 5
RESULT_SNIPPET_CHARS = 300
MAX_NOTES_IN_DIGEST = 10

TASK_NOTE_PROMPT = """You compress agent task results into a single concise memory sentence (max 120 chars).
Write in past tense. Include: what was done, key outcome, any important detail.
Example: "Created /users POST endpoint with input validation and bcrypt password hashing."
Respond with ONLY the memory sentence, no preamble, no quotes."""

PROJECT_DIGEST_PROMPT = """You maintain a rolling project context summary for an AI dev team.
Merge the existing summary with new recent work into 3-5 concise sentences.
Focus on: tech stack used, patterns established, recent changes, known issues.
Respond with ONLY the updated summary, no preamble."""


class MemorySummarizer:
    """
    Args:
        client: Reasoning client used for the summarization calls
        config: Model settings for the cheap summarizer model
    """

    def __init__(self, client: ReasoningClient, config: ModelConfig):
        self.client = client
        self.config = config

    async def summarize_task(
        self,
        *,
        agent_role: str,
        user_request: str,
        task_summary: str,
        results: Sequence[str],
    ) -> str:
        """
        Compress a finished task into one note (at most NOTE_CHAR_LIMIT chars).

        Falls back to the clipped plan summary when the call fails or
        returns nothing.
        """
        snippet = "\n".join(r[:RESULT_SNIPPET_CHARS] for r in list(results)[:MAX_RESULTS_IN_PROMPT])
        messages = [
            ChatMessage("system", TASK_NOTE_PROMPT),
            ChatMessage(
                "user",
                f"Agent role: {agent_role}\n"
                f"User request: {user_request}\n"
                f"Task summary: {task_summary}\n"
                f"Results:\n{snippet}",
            ),
        ]
        try:
            response = await self.client.complete(self.config, messages)
        except ProviderError as e:
            logger.warning("Task summarization failed, using plan summary: %s", e)
            return task_summary[:NOTE_CHAR_LIMIT]

        note = response.content.strip().strip('"').strip()
        return note[:NOTE_CHAR_LIMIT] if note else task_summary[:NOTE_CHAR_LIMIT]

    async def merge_project_summary(
        self,
        current_summary: Optional[str],
        recent_notes: List[str],
    ) -> Optional[str]:
        """
        Merge the previous digest with the newest notes.

        Returns:
            The new digest, or None when the call fails or returns nothing
        """
        numbered = "\n".join(
            f"{i}. {note}" for i, note in enumerate(recent_notes[:MAX_NOTES_IN_DIGEST], 1)
        )
        messages = [
            ChatMessage("system", PROJECT_DIGEST_PROMPT),
            ChatMessage(
                "user",
                f"Existing summary:\n{current_summary or '(none yet)'}\n\n"
                f"Recent task memories (newest first):\n{numbered}",
            ),
        ]
        try:
            response = await self.client.complete(self.config, messages)
        except ProviderError as e:
            logger.warning("Project summary refresh failed: %s", e)
            return None
        return response.content.strip() or None
