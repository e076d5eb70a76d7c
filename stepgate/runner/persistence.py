"""
Session snapshots for pause/resume across process restarts.

Layout under the state directory:

    tasks/<task_id>/session.json    snapshot (validated against session.schema.json)
    tasks/<task_id>/audit.json      audit trail
    tasks/_archive/<task_id>/       terminal sessions
"""

import json
import logging
import shutil
from pathlib import Path

from stepgate.lib.constants import ARCHIVE_DIRNAME, AUDIT_FILENAME, SESSION_FILENAME, SNAPSHOT_VERSION
from stepgate.lib.errors import InvariantViolation
from stepgate.lib.validate import validate_before_write, validate_file
from stepgate.plan.models import Plan, PlanVersion, SubtaskStatus, parse_confidence
from stepgate.plan.queue import SubtaskQueue
from stepgate.plan.store import PlanStore
from stepgate.runner.audit import AuditTrail
from stepgate.runner.session import Clarification, Session, Task
from stepgate.workflow.phases import Phase, is_terminal, parse_phase

logger = logging.getLogger(__name__)


def task_dir(tasks_dir: Path, task_id: str) -> Path:
    return tasks_dir / task_id


def snapshot(session: Session) -> dict:
    """Serialize a session to a plain dict."""
    parts = session.snapshot_parts()
    store: PlanStore = parts["plan_store"]
    queue: SubtaskQueue | None = parts["queue"]
    return {
        "version": SNAPSHOT_VERSION,
        "task": {
            "id": session.task.id,
            "request": session.task.request,
            "created": session.task.created,
        },
        "phase": session.phase.value,
        "confidence": session.confidence.value if session.confidence else None,
        "plan_versions": [v.to_dict() for v in store.versions],
        "next_version": store.next_number,
        "subtasks": queue.to_list() if queue is not None else None,
        "feedback_subtask": session.feedback_subtask,
        "last_result_summary": session.last_result_summary,
        "clarifications": [{"question": c.question, "answer": c.answer} for c in session.clarifications],
        "pending_draft": session.pending_draft.to_dict() if session.pending_draft else None,
    }


def restore(data: dict, audit: AuditTrail | None = None) -> Session:
    """Rebuild a session from a snapshot dict.

    Raises:
        InvariantViolation: if the snapshot breaks a protocol invariant
    """
    phase = parse_phase(data["phase"])
    if phase is None:
        raise InvariantViolation(f"Task {data['task']['id']} has unknown phase {data['phase']!r}")
    if is_terminal(phase):
        raise InvariantViolation(f"Task {data['task']['id']} already ended ({phase.value})")

    store = PlanStore(
        versions=[PlanVersion.from_dict(v) for v in data["plan_versions"]],
        next_number=data["next_version"],
    )
    for version in store.versions:
        if version.plan.open_questions:
            raise InvariantViolation(
                f"Stored plan v{version.number} has open questions; it can never have been submitted"
            )

    queue = None
    if data.get("subtasks") is not None:
        queue = SubtaskQueue.from_list(data["subtasks"])

    active = [s.id for s in queue if s.status == SubtaskStatus.ACTIVE] if queue else []
    if phase == Phase.EXECUTING and not active:
        raise InvariantViolation("Snapshot is executing without an active subtask")
    if phase != Phase.EXECUTING and active:
        raise InvariantViolation(f"Subtask {active[0]} is active while {phase.value}")

    task = Task(**data["task"])
    session = Session(
        task,
        phase=phase,
        plan_store=store,
        queue=queue,
        confidence=parse_confidence(data.get("confidence")),
        audit=audit,
    )
    session.feedback_subtask = data.get("feedback_subtask")
    session.last_result_summary = data.get("last_result_summary", "")
    session.clarifications = [Clarification(**c) for c in data.get("clarifications", [])]
    if data.get("pending_draft"):
        session.pending_draft = Plan.from_dict(data["pending_draft"])
    return session


def save_session(tasks_dir: Path, session: Session) -> Path:
    """Write snapshot and audit trail. Returns the task directory."""
    directory = task_dir(tasks_dir, session.id)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / SESSION_FILENAME

    data = snapshot(session)
    validate_before_write(data, "session", path)
    path.write_text(json.dumps(data, indent=2))
    session.audit.save(directory / AUDIT_FILENAME)
    logger.debug(f"Saved session {session.id} ({session.phase.value}) to {path}")
    return directory


def load_session(tasks_dir: Path, task_id: str) -> Session:
    """Load a stored session.

    Raises:
        FileNotFoundError: if no snapshot exists for the task
        ValidationError: if the snapshot doesn't match the schema
        InvariantViolation: if the snapshot breaks a protocol invariant
    """
    directory = task_dir(tasks_dir, task_id)
    path = directory / SESSION_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"No stored session for task '{task_id}'")
    data = validate_file(path, "session")
    return restore(data, AuditTrail.load(directory / AUDIT_FILENAME))


def read_snapshot(tasks_dir: Path, task_id: str, archived: bool = False) -> dict:
    """Read a validated snapshot without restoring it (for display)."""
    base = tasks_dir / ARCHIVE_DIRNAME if archived else tasks_dir
    return validate_file(base / task_id / SESSION_FILENAME, "session")


def archive_session(tasks_dir: Path, session: Session) -> Path:
    """Save a terminal session and move it under tasks/_archive/."""
    directory = save_session(tasks_dir, session)
    archive_root = tasks_dir / ARCHIVE_DIRNAME
    archive_root.mkdir(parents=True, exist_ok=True)
    target = archive_root / session.id
    if target.exists():
        shutil.rmtree(target)
    shutil.move(str(directory), str(target))
    logger.info(f"Archived task {session.id} ({session.phase.value})")
    return target


def list_task_ids(tasks_dir: Path, archived: bool = False) -> list[str]:
    base = tasks_dir / ARCHIVE_DIRNAME if archived else tasks_dir
    if not base.exists():
        return []
    return sorted(
        d.name for d in base.iterdir()
        if d.is_dir() and not d.name.startswith("_") and (d / SESSION_FILENAME).exists()
    )
