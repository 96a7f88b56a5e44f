"""Core module for specorch."""

from . import defaults
from .config import (
    Config,
    LoopConfig,
    MutatorConfig,
    SandboxConfig,
    StateConfig,
    ValidatorConfig,
)
from .errors import (
    CorrectionError,
    InvalidTransitionError,
    ParentTaskError,
    PrerequisiteError,
    SpecLoadError,
    SpecorchError,
    TaskNotFoundError,
    UnsafeCommandError,
)
from .files import BackupResult, WriteResult, atomic_write, atomic_write_with_backup, safe_read
from .validator import ValidationResult, Validator

__all__ = [
    # Defaults
    "defaults",
    # Config
    "Config",
    "LoopConfig",
    "MutatorConfig",
    "ValidatorConfig",
    "StateConfig",
    "SandboxConfig",
    # Errors
    "SpecorchError",
    "SpecLoadError",
    "TaskNotFoundError",
    "PrerequisiteError",
    "ParentTaskError",
    "InvalidTransitionError",
    "CorrectionError",
    "UnsafeCommandError",
    # Files
    "WriteResult",
    "BackupResult",
    "atomic_write",
    "atomic_write_with_backup",
    "safe_read",
    # Validator
    "Validator",
    "ValidationResult",
]
