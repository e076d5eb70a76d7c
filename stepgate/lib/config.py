"""
Configuration loader for stepgate.

Reads stepgate.yaml from the working directory, falling back to
~/.config/stepgate/config.yaml. A missing file means defaults; a broken
file or a wrongly typed key is logged and replaced by its default.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from stepgate.lib.guidelines import GLOBAL_GUIDELINES_PATH

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "stepgate.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "stepgate" / "config.yaml"
STATE_DIR_ENV = "STEPGATE_STATE_DIR"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Command templates per worker stage. {prompt} in a template means the
# prompt goes on the command line; otherwise it is passed via stdin.
DEFAULT_WORKER_STAGES = {
    "draft_plan": "claude -p --output-format json",
    # Request + guidelines -> plan JSON

    "execute_subtask": "claude -p --output-format json --permission-mode acceptEdits",
    # One subtask + guidelines + feedback log -> result JSON
}


@dataclass
class WorkerConfig:
    """Agent commands used by the command worker."""
    stages: dict[str, str] = field(default_factory=lambda: DEFAULT_WORKER_STAGES.copy())
    timeout: int = 600


@dataclass
class EngineConfig:
    """Top-level configuration."""
    state_dir: Path = Path(".stepgate")
    guideline_paths: list[Path] = field(default_factory=lambda: [Path("guidelines")])
    global_guidelines_path: Optional[Path] = GLOBAL_GUIDELINES_PATH
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    log_level: str = "WARNING"
    source: Optional[Path] = None  # File the config was read from, if any

    @property
    def tasks_dir(self) -> Path:
        return self.state_dir / "tasks"


def find_config_file(cwd: Path | None = None) -> Path | None:
    """Return the first existing config file, or None."""
    cwd = cwd or Path.cwd()
    for candidate in (cwd / CONFIG_FILENAME, USER_CONFIG_PATH):
        if candidate.exists():
            return candidate
    return None


def _path_list(value, key: str, default: list[Path]) -> list[Path]:
    if isinstance(value, str):
        return [Path(value)]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return [Path(v) for v in value]
    logger.warning(f"Invalid {key} {value!r}, using default")
    return default


def load_config(path: Path | None = None, cwd: Path | None = None) -> EngineConfig:
    """Load stepgate.yaml and return EngineConfig.

    Relative paths in the file are resolved against the file's directory.
    """
    config = EngineConfig()
    if path is None:
        path = find_config_file(cwd)

    data = {}
    if path is not None:
        try:
            data = yaml.safe_load(path.read_text()) or {}
            config.source = path
        except (yaml.YAMLError, OSError) as e:
            logger.warning(f"Failed to parse {path}: {e}")
            data = {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring {path}: top level must be a mapping")
            data = {}

    base = path.parent if config.source else (cwd or Path.cwd())

    if "state_dir" in data:
        if isinstance(data["state_dir"], str):
            config.state_dir = Path(data["state_dir"])
        else:
            logger.warning(f"Invalid state_dir {data['state_dir']!r}, using default")

    guidelines = data.get("guidelines") or {}
    if not isinstance(guidelines, dict):
        logger.warning(f"Invalid guidelines section {guidelines!r}, using defaults")
        guidelines = {}
    if "paths" in guidelines:
        config.guideline_paths = _path_list(guidelines["paths"], "guidelines.paths", config.guideline_paths)
    if "global_path" in guidelines:
        value = guidelines["global_path"]
        if value is None:
            config.global_guidelines_path = None
        elif isinstance(value, str):
            config.global_guidelines_path = Path(value).expanduser()
        else:
            logger.warning(f"Invalid guidelines.global_path {value!r}, using default")

    worker = data.get("worker") or {}
    if not isinstance(worker, dict):
        logger.warning(f"Invalid worker section {worker!r}, using defaults")
        worker = {}
    stages = worker.get("stages") or {}
    if isinstance(stages, dict):
        for stage, template in stages.items():
            if stage not in DEFAULT_WORKER_STAGES:
                logger.warning(f"Unknown worker stage '{stage}' ignored")
            elif not isinstance(template, str) or not template.strip():
                logger.warning(f"Invalid command for worker stage '{stage}', using default")
            else:
                config.worker.stages[stage] = template
    else:
        logger.warning(f"Invalid worker.stages {stages!r}, using defaults")
    if "timeout" in worker:
        timeout = worker["timeout"]
        if isinstance(timeout, int) and not isinstance(timeout, bool) and timeout > 0:
            config.worker.timeout = timeout
        else:
            logger.warning(f"Invalid worker.timeout {timeout!r}, using {config.worker.timeout}")

    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level in VALID_LOG_LEVELS:
            config.log_level = level
        else:
            logger.warning(f"Unknown log_level '{data['log_level']}', using {config.log_level}")

    env_state_dir = os.environ.get(STATE_DIR_ENV)
    if env_state_dir:
        config.state_dir = Path(env_state_dir)

    if not config.state_dir.is_absolute():
        config.state_dir = base / config.state_dir
    config.guideline_paths = [p if p.is_absolute() else base / p for p in config.guideline_paths]

    return config
