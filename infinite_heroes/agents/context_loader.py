"""
Context Loader Utility for Infinite Heroes Agents

This module provides secure loading of context files for AI agents.
Context files contain system prompts with hardening against prompt
injection coming from user supplied story material.
"""

from pathlib import Path
from functools import lru_cache


# Base directory for agents
AGENTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=10)
def load_context(agent_name: str) -> str:
    """
    Load context file for a specific agent.

    Args:
        agent_name: Name of the agent (writer, villain)

    Returns:
        Content of the context file as string

    Raises:
        FileNotFoundError: If context file doesn't exist
    """
    context_paths = {
        "writer": AGENTS_DIR / "narrative" / "context_writer.txt",
        "villain": AGENTS_DIR / "casting" / "context_villain.txt",
    }

    if agent_name not in context_paths:
        raise ValueError(f"Unknown agent: {agent_name}. Available: {list(context_paths.keys())}")

    context_path = context_paths[agent_name]

    if not context_path.exists():
        raise FileNotFoundError(f"Context file not found: {context_path}")

    return context_path.read_text(encoding="utf-8")


def _escape(text: str) -> str:
    return (text or "").replace("<", "&lt;").replace(">", "&gt;")


def wrap_user_input(user_input: str) -> str:
    """
    Wrap user input in XML tags for input isolation.
    This helps the AI distinguish between instructions and user data.
    """
    return f"<user_input>\n{_escape(user_input)}\n</user_input>"


def wrap_page_instructions(instructions: str, history: str, story_context: str) -> tuple[str, str, str]:
    """
    Wrap page instructions for the writer agent.

    Args:
        instructions: Page writing instructions (page number, genre, cast)
        history: Captions and dialogue of the pages already drawn
        story_context: Premise and scene summaries from the writer's project

    Returns:
        Tuple of (wrapped_instructions, wrapped_history, wrapped_context)
    """
    wrapped_inst = f"<page_instructions>\n{_escape(instructions)}\n</page_instructions>"
    wrapped_hist = f"<previous_panels>\n{_escape(history) or 'None'}\n</previous_panels>"
    wrapped_ctx = f"<story_context>\n{_escape(story_context)}\n</story_context>"

    return wrapped_inst, wrapped_hist, wrapped_ctx


# User-friendly error messages (not exposing internal details)
ERROR_MESSAGES = {
    "FORMAT_VIOLATION": "The model returned a page we could not read. Try regenerating this page.",
    "GENERATION_ERROR": "Something went wrong while drawing this page. Try regenerating it.",
    "IMAGE_ERROR": "The panel artwork could not be generated. Try regenerating this page.",
    "TIMEOUT": "The generation service took too long to answer. Try regenerating this page.",
    "VILLAIN_ERROR": "We could not come up with a villain this time. Please try again.",
}


def get_user_friendly_error(error_type: str) -> str:
    """
    Get user-friendly error message without exposing internal details.

    Args:
        error_type: Internal error type identifier

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(error_type, ERROR_MESSAGES["GENERATION_ERROR"])
