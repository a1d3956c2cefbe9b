"""
Prompt Loading Utilities
========================

Role personas live as markdown files in this package and are read through
importlib.resources so they ship inside the wheel.
"""

from functools import lru_cache
from importlib import resources

PROMPTS_PACKAGE = "crewforge.prompts"


def _get_prompt_path(name: str):
    return resources.files(PROMPTS_PACKAGE) / f"{name}.md"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """
    Load a prompt template from the prompts package.

    Args:
        name: Name of the prompt file (without .md extension)

    Returns:
        Prompt text with surrounding whitespace removed

    Raises:
        FileNotFoundError: if no such prompt exists
    """
    return _get_prompt_path(name).read_text(encoding="utf-8").strip()
