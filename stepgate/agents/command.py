"""
Command worker: drafts plans and executes subtasks by running an agent CLI.

Each stage maps to a command template from stepgate.yaml (worker.stages).
If {prompt} appears in the template the prompt is substituted as an
argument; otherwise it is passed via stdin. The agent's reply must contain
a JSON object matching the stage's schema.
"""

import json
import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Sequence

from stepgate.agents.worker import DraftOutcome, DraftRequest, ExecutionOutcome, SubtaskResult, WorkerFailure
from stepgate.lib.config import WorkerConfig
from stepgate.lib.guidelines import GuidelineDocument
from stepgate.lib.history import (
    format_clarifications,
    format_feedback_log,
    format_guidelines,
    format_settled_subtasks,
)
from stepgate.lib.prompts import PromptError, build_section, render_prompt
from stepgate.lib.validate import ValidationError, validate
from stepgate.plan.models import Plan, Subtask, parse_confidence

logger = logging.getLogger(__name__)

_PROMPT_PLACEHOLDER = "__PROMPT_PLACEHOLDER__"


def build_command(template: str, prompt: str) -> tuple[list[str], str | None]:
    """Build argv for a stage template.

    Returns (cmd, stdin_input); stdin_input is None when the prompt is an argument.
    """
    if "{prompt}" in template:
        cmd = shlex.split(template.replace("{prompt}", _PROMPT_PLACEHOLDER))
        return [prompt if arg == _PROMPT_PLACEHOLDER else arg for arg in cmd], None
    return shlex.split(template), prompt


def strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from text if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines and lines[0].strip().startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def extract_json(output: str) -> dict | None:
    """Find the JSON object in agent output.

    Handles the {"result": "..."} wrapper of --output-format json, fenced
    blocks, and an object preceded by explanatory text.
    """
    text = strip_markdown_fences(output)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("result"), str):
        return extract_json(data["result"])
    if isinstance(data, dict):
        return data

    fence_match = re.search(r'```(?:json)?\s*\n(\{[\s\S]*?\})\s*\n```', output)
    candidates = [fence_match.group(1)] if fence_match else []
    brace_match = re.search(r'\{[\s\S]*\}', output)
    if brace_match:
        candidates.append(brace_match.group(0))
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


class CommandWorker:
    """Worker backed by external agent commands."""

    def __init__(
        self,
        config: WorkerConfig,
        request: str = "",
        cwd: Path | None = None,
        log_dir: Path | None = None,
    ):
        """
        Args:
            config: Stage command templates and timeout
            request: The task request, given to execution prompts as context
            cwd: Directory the agent runs in
            log_dir: If set, each call writes <stage>.log there
        """
        self.config = config
        self.request = request
        self.cwd = cwd
        self.log_dir = log_dir

    def draft_plan(self, draft: DraftRequest, guidelines: Sequence[GuidelineDocument]) -> DraftOutcome:
        if draft.remaining_only:
            mode = (
                "This is a revision in the middle of execution. The settled subtasks below are "
                "finished; list ONLY the subtasks that remain to be done."
            )
        elif draft.previous is not None:
            mode = "This is a revision of an existing plan. Return the complete revised plan."
        else:
            mode = "This is a new plan."

        previous = draft.previous.render() if draft.previous else None
        try:
            prompt = render_prompt(
                "draft_plan",
                request=draft.request,
                mode_instructions=mode,
                guidelines_section=build_section(format_guidelines(guidelines), "## Guidelines"),
                clarifications_section=build_section(
                    format_clarifications(draft.clarifications), "## Answered questions"
                ),
                previous_section=build_section(previous, "## Current plan"),
                settled_section=build_section(format_settled_subtasks(draft.settled), "## Settled subtasks"),
                feedback_section=build_section(draft.feedback, "## Human feedback to apply"),
            )
        except PromptError as e:
            return WorkerFailure("draft_plan", str(e))

        data = self._run("draft_plan", prompt)
        if isinstance(data, WorkerFailure):
            return data
        try:
            validate(data, "plan")
        except ValidationError as e:
            return WorkerFailure("draft_plan", f"Agent returned an invalid plan: {e}", {"output": data})
        return Plan.from_dict(data)

    def execute_subtask(self, subtask: Subtask, guidelines: Sequence[GuidelineDocument]) -> ExecutionOutcome:
        try:
            prompt = render_prompt(
                "execute_subtask",
                request=self.request or "(not provided)",
                subtask_id=subtask.id,
                subtask=subtask.description,
                guidelines_section=build_section(format_guidelines(guidelines), "## Guidelines"),
                feedback_section=build_section(
                    format_feedback_log(subtask.feedback), "## Feedback on earlier attempts"
                ),
            )
        except PromptError as e:
            return WorkerFailure("execute_subtask", str(e))

        data = self._run("execute_subtask", prompt)
        if isinstance(data, WorkerFailure):
            return data
        try:
            validate(data, "result")
        except ValidationError as e:
            return WorkerFailure("execute_subtask", f"Agent returned an invalid result: {e}", {"output": data})

        if data["status"] == "failed":
            return WorkerFailure("execute_subtask", data.get("error") or data["summary"], {"output": data})
        return SubtaskResult(
            summary=data["summary"],
            confidence=parse_confidence(data["confidence"]),
            details={"files": data.get("files", [])},
        )

    def _run(self, stage: str, prompt: str) -> dict | WorkerFailure:
        template = self.config.stages[stage]
        cmd, stdin_input = build_command(template, prompt)
        logger.debug(f"[WORKER] {stage}: {cmd[0]}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.cwd) if self.cwd else None,
                input=stdin_input,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired:
            return WorkerFailure(stage, f"Agent timed out after {self.config.timeout}s")
        except FileNotFoundError:
            return WorkerFailure(stage, f"Agent command not found: {cmd[0]}")
        except OSError as e:
            return WorkerFailure(stage, f"Cannot run agent command {cmd[0]}: {e}")

        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            (self.log_dir / f"{stage}.log").write_text(
                f"=== COMMAND ===\n{' '.join(cmd)}\n\n"
                f"=== EXIT CODE ===\n{result.returncode}\n\n"
                f"=== STDOUT ===\n{result.stdout}\n\n"
                f"=== STDERR ===\n{result.stderr}\n"
            )

        if result.returncode != 0:
            error_msg = result.stderr.strip() or result.stdout.strip() or "(no output)"
            return WorkerFailure(stage, f"Agent failed (exit {result.returncode}): {error_msg}")

        data = extract_json(result.stdout)
        if data is None:
            return WorkerFailure(stage, "Agent output contained no JSON object", {"output": result.stdout})
        return data
