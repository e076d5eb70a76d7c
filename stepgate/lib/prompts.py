"""
Worker prompt templates.

Templates live in stepgate/prompts/ and ship as package data. They use
str.format() placeholders ({request}, {guidelines_section}, ...); literal
braces in JSON examples are doubled. HTML comments document a template's
variables and are stripped before the prompt reaches the agent.
"""

import logging
import re
import string
from functools import lru_cache
from pathlib import Path

from stepgate.lib.errors import StepgateError

logger = logging.getLogger(__name__)

__all__ = [
    "PromptError", "load_prompt", "template_fields", "render_prompt",
    "build_section", "clear_cache", "PROMPTS_DIR",
]

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"


class PromptError(StepgateError):
    """A template is missing or cannot be rendered with the given variables."""
    pass


@lru_cache(maxsize=8)
def load_prompt(name: str) -> str:
    """
    Load a template by name, with documentation comments removed.

    Args:
        name: Template name without extension ('draft_plan', 'execute_subtask')

    Returns:
        Template text ready for str.format()

    Raises:
        PromptError: If no such template ships with the package
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"
    if not prompt_path.is_file():
        raise PromptError(f"Prompt template '{name}' not found. Expected file: {prompt_path}")

    logger.debug(f"[WORKER] loading prompt template {name}")
    content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text(encoding="utf-8"))
    return content.lstrip()


@lru_cache(maxsize=8)
def template_fields(name: str) -> frozenset[str]:
    """Placeholder names a template expects."""
    return frozenset(
        field.split(".")[0].split("[")[0]
        for _, field, _, _ in string.Formatter().parse(load_prompt(name))
        if field
    )


def render_prompt(name: str, **kwargs) -> str:
    """
    Render a template with the stage's variables.

    Every placeholder must be supplied. All missing names are reported in
    one error so a stage's call site can be fixed in one go.

    Args:
        name: Template name without extension
        **kwargs: Values for the template's placeholders

    Returns:
        The prompt text sent to the agent

    Raises:
        PromptError: If the template is missing or a placeholder has no value

    Example:
        render_prompt('execute_subtask', request='Add login', subtask_id=2, ...)
    """
    missing = sorted(template_fields(name) - kwargs.keys())
    if missing:
        raise PromptError(
            f"Missing required variable(s) {', '.join(missing)} in prompt '{name}'. "
            f"Provided: {sorted(kwargs)}"
        )
    return load_prompt(name).format(**kwargs)


def build_section(content: str | None, header: str, empty_msg: str | None = None) -> str:
    """
    Markdown section for optional prompt context.

    Args:
        content: Section body; empty or None means nothing to say
        header: Markdown header line, e.g. "## Guidelines"
        empty_msg: Body to use when content is empty

    Returns:
        The section, or "" when there is no content and no empty_msg.
    """
    if content:
        return f"{header}\n\n{content}\n"
    if empty_msg is not None:
        return f"{header}\n\n{empty_msg}\n"
    return ""


def clear_cache():
    """Forget loaded templates (tests, template edits)."""
    load_prompt.cache_clear()
    template_fields.cache_clear()
