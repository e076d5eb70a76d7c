"""
Formatting of session history for worker prompts.

Feedback logs, clarification answers and guideline texts are turned into
markdown blocks the worker can read.
"""

__all__ = [
    "format_guidelines",
    "format_feedback_log",
    "format_clarifications",
    "format_settled_subtasks",
]


def format_guidelines(documents) -> str:
    """Format guideline documents, most specific first.

    Returns empty string if there are none.
    """
    sections = []
    for doc in documents:
        sections.append(f"### {doc.name}\n\n{doc.text}")
    return "\n\n".join(sections)


def format_feedback_log(entries) -> str:
    """
    Format a subtask's feedback log for the executing worker.

    The newest entry is the one to act on; earlier entries show what was
    already asked for so it isn't undone.
    """
    if not entries:
        return ""

    lines = []
    last = len(entries)
    for i, entry in enumerate(entries, 1):
        marker = " (latest)" if i == last else ""
        lines.append(f"### Feedback {i}{marker}\n**Human said:** {entry.text}\n")
    return "\n".join(lines)


def format_clarifications(clarifications) -> str:
    """Format answered questions as Q/A pairs."""
    if not clarifications:
        return ""
    parts = []
    for c in clarifications:
        parts.append(f"**Q:** {c.question}\n**A:** {c.answer}\n")
    return "\n".join(parts)


def format_settled_subtasks(subtasks) -> str:
    """Format done/skipped subtasks so a revised plan doesn't redo them."""
    if not subtasks:
        return ""
    return "\n".join(f"- [{s.status.value}] {s.description}" for s in subtasks)
