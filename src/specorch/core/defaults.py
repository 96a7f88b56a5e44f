"""Default configuration values for specorch.

All configurable defaults are defined here. These can be overridden by:
1. User config file (~/.specorch/config.yaml)
2. Project config file (.specorch/config.yaml)
3. Environment variables
4. CLI flags

Priority (highest to lowest):
CLI flags > Environment > Project config > User config > Defaults
"""

from __future__ import annotations

# =============================================================================
# SPEC DOCUMENTS
# =============================================================================

REQUIREMENTS_FILE: str = "requirements.md"
DESIGN_FILE: str = "design.md"
TASKS_FILE: str = "tasks.md"

# =============================================================================
# RALPH-LOOP
# =============================================================================

# Maximum correction attempts per task before the task is exhausted
DEFAULT_MAX_ATTEMPTS: int = 3

# Include optional tasks (marked with *) when selecting the next task
DEFAULT_INCLUDE_OPTIONAL: bool = False

# =============================================================================
# DOCUMENT MUTATOR
# =============================================================================

# Back up a spec document before replacing it
DEFAULT_CREATE_BACKUP: bool = True

# Where backups are written, relative to the project directory
DEFAULT_BACKUP_DIR: str = ".specorch/backups"

# Backups kept per document (oldest pruned first)
DEFAULT_MAX_BACKUPS: int = 10

# Check document shape (sections/checkboxes) before committing
DEFAULT_STRICT_VALIDATION: bool = True

# =============================================================================
# VALIDATOR
# =============================================================================

# Seconds a validation result is served from cache
DEFAULT_CACHE_TTL: float = 5.0

# Hard timeout per validation check in seconds
DEFAULT_VALIDATION_TIMEOUT: float = 5.0

# Checks slower than this (milliseconds) log a performance warning
DEFAULT_PERFORMANCE_THRESHOLD_MS: int = 100

# =============================================================================
# STATE & LOGS
# =============================================================================

DEFAULT_STATE_PATH: str = ".specorch/state/orchestrator-state.json"

DEFAULT_ACTIVITY_DB: str = ".specorch/activity.db"

# =============================================================================
# SANDBOX
# =============================================================================

# CPU ceiling as a percentage of one core over the wall-clock limit
DEFAULT_SANDBOX_MAX_CPU: int = 80

# Address-space ceiling in bytes (512MB)
DEFAULT_SANDBOX_MAX_MEMORY: int = 512 * 1024 * 1024

# Wall-clock ceiling in milliseconds (60 seconds)
DEFAULT_SANDBOX_MAX_TIME: int = 60_000

# Refuse commands the safety checker recommends blocking
DEFAULT_SANDBOX_ENFORCE_SAFETY: bool = True
