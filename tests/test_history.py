"""Tests for stepgate.lib.history formatting helpers."""

from stepgate.lib.guidelines import GuidelineDocument, GuidelineScope
from stepgate.lib.history import (
    format_clarifications,
    format_feedback_log,
    format_guidelines,
    format_settled_subtasks,
)
from stepgate.plan.models import FeedbackEntry, Subtask, SubtaskStatus
from stepgate.runner.session import Clarification


class TestFormatFeedbackLog:
    """Tests for format_feedback_log."""

    def test_empty(self):
        assert format_feedback_log([]) == ""

    def test_latest_marked(self):
        text = format_feedback_log([FeedbackEntry("first"), FeedbackEntry("second")])
        assert "### Feedback 1\n**Human said:** first" in text
        assert "### Feedback 2 (latest)\n**Human said:** second" in text
        assert text.index("first") < text.index("second")


class TestFormatGuidelines:
    """Tests for format_guidelines."""

    def test_empty(self):
        assert format_guidelines([]) == ""

    def test_keeps_order(self):
        docs = [
            GuidelineDocument("python", GuidelineScope(("python",)), "Type hints."),
            GuidelineDocument("general", GuidelineScope(), "Small commits."),
        ]
        assert format_guidelines(docs) == "### python\n\nType hints.\n\n### general\n\nSmall commits."


class TestFormatClarifications:
    """Tests for format_clarifications."""

    def test_pairs(self):
        text = format_clarifications([Clarification("Which db?", "Postgres")])
        assert text == "**Q:** Which db?\n**A:** Postgres\n"

    def test_empty(self):
        assert format_clarifications([]) == ""


class TestFormatSettledSubtasks:
    """Tests for format_settled_subtasks."""

    def test_status_prefix(self):
        subtasks = [Subtask(1, "a", SubtaskStatus.DONE), Subtask(2, "b", SubtaskStatus.SKIPPED)]
        assert format_settled_subtasks(subtasks) == "- [done] a\n- [skipped] b"
