"""Shared constants for stepgate."""

import re

# Task ID validation
TASK_ID_PATTERN = re.compile(r'^[a-z][a-z0-9_-]*$')
MAX_TASK_ID_LEN = 32

# Per-task state files
SESSION_FILENAME = "session.json"
AUDIT_FILENAME = "audit.json"
ARCHIVE_DIRNAME = "_archive"

SNAPSHOT_VERSION = 1
