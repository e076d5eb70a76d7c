"""
Wiring for CLI runs: resolver, worker and engine from configuration, and
the drive loop that persists the session whatever happens.
"""

import logging

from stepgate.agents.command import CommandWorker
from stepgate.lib.constants import AUDIT_FILENAME
from stepgate.lib.config import EngineConfig
from stepgate.lib.errors import ChannelClosed, InvariantViolation
from stepgate.lib.guidelines import DirectoryGuidelineStore, GuidelineResolver
from stepgate.lib.locking import task_lock
from stepgate.runner.audit import Actor
from stepgate.runner.persistence import archive_session, save_session, task_dir
from stepgate.runner.session import Session
from stepgate.workflow.engine import ProtocolEngine
from stepgate.workflow.menu_gate import LineChannel, StdioChannel
from stepgate.workflow.phases import is_terminal

logger = logging.getLogger(__name__)


def build_resolver(config: EngineConfig) -> GuidelineResolver:
    optional = [config.global_guidelines_path] if config.global_guidelines_path else []
    store = DirectoryGuidelineStore(config.guideline_paths, optional_paths=optional)
    return GuidelineResolver(store)


def build_engine(config: EngineConfig, request: str, task_id: str, channel: LineChannel | None = None) -> ProtocolEngine:
    worker = CommandWorker(
        config.worker,
        request=request,
        log_dir=task_dir(config.tasks_dir, task_id) / "agent_logs",
    )
    return ProtocolEngine(worker, build_resolver(config), channel or StdioChannel())


def drive(engine: ProtocolEngine, session: Session, config: EngineConfig, resume: bool = False) -> int:
    """Run (or resume) a session under its task lock and persist the outcome.

    Returns a CLI exit code.
    """
    channel = engine.channel
    with task_lock(config.state_dir, session.id):
        try:
            phase = engine.resume(session) if resume else engine.run(session)
        except ChannelClosed:
            save_session(config.tasks_dir, session)
            channel.write(
                f"\nInput closed. Task '{session.id}' saved in phase {session.phase.value}.\n"
                f"Continue with: stepgate resume {session.id}"
            )
            return 1
        except InvariantViolation as e:
            directory = task_dir(config.tasks_dir, session.id)
            directory.mkdir(parents=True, exist_ok=True)
            session.audit.save(directory / AUDIT_FILENAME)
            channel.write(f"ERROR: protocol invariant violated, task '{session.id}' aborted: {e}")
            return 1
        except Exception:
            logger.error(f"[ENGINE] {session.id}: unexpected failure in {session.phase.value}, saving session")
            save_session(config.tasks_dir, session)
            raise

        if is_terminal(phase):
            session.audit.record(phase.value, Actor.ENGINE, "archived")
            target = archive_session(config.tasks_dir, session)
            channel.write(f"\nTask '{session.id}' {phase.value}. Archived to {target}")
            return 0

        save_session(config.tasks_dir, session)
        channel.write(
            f"\nTask '{session.id}' paused.\n"
            f"Continue with: stepgate resume {session.id}"
        )
        return 0
