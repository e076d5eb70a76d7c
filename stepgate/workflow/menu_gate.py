"""
Menu gate: numbered decision points with a free-text fallback.

A gate renders options as a 1-based numbered list and reads one line per
cycle. Every response is classified as exactly one of:

- Selection: an integer in range, resolved to that option's action
- Freeform:  free text, handed back to the caller as feedback
- Invalid:   anything else (out of range, empty, malformed number)

Invalid responses re-render the identical prompt and read again. The gate
never times out and never picks a default.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence, Union

from stepgate.lib.errors import ChannelClosed, RecoverableInput

logger = logging.getLogger(__name__)

__all__ = [
    "MenuAction",
    "MenuOption",
    "Selection",
    "Freeform",
    "Invalid",
    "GateResult",
    "classify_response",
    "render_menu",
    "LineChannel",
    "StdioChannel",
    "MenuGate",
]

_INTEGER_RE = re.compile(r'^[+-]?\d+$')
# Looks like an attempted number ("2.", "1.5", "#3", "-") rather than prose
_NUMERIC_LIKE_RE = re.compile(r'^[\d\s.,#+\-()]+$')


class MenuAction(Enum):
    """Actions a gate option can resolve to."""
    APPROVE = "approve"
    REVERT = "revert"
    CANCEL = "cancel"
    CONTINUE = "continue"
    MODIFY = "modify"
    PAUSE = "pause"
    RETRY = "retry"


@dataclass(frozen=True)
class MenuOption:
    label: str
    action: MenuAction


@dataclass(frozen=True)
class Selection:
    """A valid menu choice."""
    index: int  # 1-based, as shown
    action: MenuAction


@dataclass(frozen=True)
class Freeform:
    """Free text received in place of a menu choice."""
    text: str


@dataclass(frozen=True)
class Invalid:
    """A response that is neither a choice nor feedback."""
    response: str
    reason: str


GateResult = Union[Selection, Freeform]


def classify_response(response: str, options: Sequence[MenuOption]) -> Union[Selection, Freeform, Invalid]:
    """Classify one line of input against a set of options."""
    text = response.strip()
    if not text:
        return Invalid(response, "empty response")

    if _INTEGER_RE.match(text):
        index = int(text)
        if 1 <= index <= len(options):
            return Selection(index=index, action=options[index - 1].action)
        return Invalid(response, f"choose a number between 1 and {len(options)}")

    if _NUMERIC_LIKE_RE.match(text):
        return Invalid(response, "not a whole number")

    return Freeform(text=text)


def render_menu(options: Sequence[MenuOption], header: str | None = None) -> str:
    """Render a prompt: optional header, then one numbered option per line."""
    lines = []
    if header:
        lines.append(header)
        lines.append("")
    for i, option in enumerate(options, 1):
        lines.append(f"  {i}. {option.label}")
    return "\n".join(lines)


class LineChannel(Protocol):
    """Line-oriented prompt/response transport."""

    def write(self, text: str) -> None:
        ...

    def read_line(self, prompt: str = "") -> str:
        """Read one line. Raises ChannelClosed at end of input."""
        ...


class StdioChannel:
    """Terminal channel over stdin/stdout."""

    def write(self, text: str) -> None:
        print(text)

    def read_line(self, prompt: str = "") -> str:
        try:
            return input(prompt)
        except EOFError:
            raise ChannelClosed("End of input") from None


class MenuGate:
    """Blocking decision point over a line channel."""

    def __init__(self, channel: LineChannel, input_prompt: str = "> "):
        self.channel = channel
        self.input_prompt = input_prompt

    def prompt(self, options: Sequence[MenuOption], header: str | None = None) -> GateResult:
        """Render options and block until a selection or free text arrives."""
        if not options:
            raise ValueError("A gate needs at least one option")

        rendered = render_menu(options, header)
        while True:
            self.channel.write(rendered)
            response = self.channel.read_line(self.input_prompt)
            try:
                return self._resolve(response, options)
            except RecoverableInput as e:
                logger.debug(f"[GATE] reprompting: {e}")
                self.channel.write(f"({e.reason})")

    def _resolve(self, response: str, options: Sequence[MenuOption]) -> GateResult:
        result = classify_response(response, options)
        if isinstance(result, Invalid):
            raise RecoverableInput(result.response, result.reason)
        return result
