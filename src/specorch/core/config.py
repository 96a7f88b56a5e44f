"""Configuration management for specorch."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from . import defaults as D

logger = logging.getLogger(__name__)


@dataclass
class LoopConfig:
    """Ralph-Loop configuration."""

    max_attempts: int = D.DEFAULT_MAX_ATTEMPTS
    include_optional: bool = D.DEFAULT_INCLUDE_OPTIONAL


@dataclass
class MutatorConfig:
    """Document mutator configuration."""

    create_backup: bool = D.DEFAULT_CREATE_BACKUP
    backup_dir: str = D.DEFAULT_BACKUP_DIR
    max_backups: int = D.DEFAULT_MAX_BACKUPS
    strict_validation: bool = D.DEFAULT_STRICT_VALIDATION


@dataclass
class ValidatorConfig:
    """Validator configuration."""

    cache_ttl: float = D.DEFAULT_CACHE_TTL
    timeout: float = D.DEFAULT_VALIDATION_TIMEOUT
    performance_threshold_ms: int = D.DEFAULT_PERFORMANCE_THRESHOLD_MS


@dataclass
class StateConfig:
    """Persistence locations."""

    state_path: str = D.DEFAULT_STATE_PATH
    activity_db: str = D.DEFAULT_ACTIVITY_DB


@dataclass
class SandboxConfig:
    """Resource ceilings for sub-task execution."""

    max_cpu: int = D.DEFAULT_SANDBOX_MAX_CPU
    max_memory: int = D.DEFAULT_SANDBOX_MAX_MEMORY
    max_time: int = D.DEFAULT_SANDBOX_MAX_TIME
    enforce_safety: bool = D.DEFAULT_SANDBOX_ENFORCE_SAFETY
    allowed_paths: list[str] = field(default_factory=list)
    allowed_networks: list[str] = field(default_factory=list)


@dataclass
class Config:
    """Main application configuration."""

    loop: LoopConfig = field(default_factory=LoopConfig)
    mutator: MutatorConfig = field(default_factory=MutatorConfig)
    validator: ValidatorConfig = field(default_factory=ValidatorConfig)
    state: StateConfig = field(default_factory=StateConfig)
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)

    # Standard paths
    USER_CONFIG_DIR: Path = Path.home() / ".specorch"
    USER_CONFIG_FILE: Path = USER_CONFIG_DIR / "config.yaml"
    PROJECT_CONFIG_FILE: Path = Path(".specorch") / "config.yaml"

    @classmethod
    def load(cls, project_dir: Path | None = None, user_config: Path | None = None) -> Config:
        """Load configuration from user and project files."""
        config = cls()

        user_file = user_config or cls.USER_CONFIG_FILE
        if user_file.exists():
            config._merge_from_file(user_file)

        # Project config overrides user config
        project_config = (project_dir or Path.cwd()) / cls.PROJECT_CONFIG_FILE
        if project_config.exists():
            config._merge_from_file(project_config)

        config._apply_env_overrides()

        return config

    def _merge_from_file(self, path: Path) -> None:
        """Merge configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: expected a mapping", path)
            return

        loop = data.get("loop") or {}
        if "max_attempts" in loop:
            self.loop.max_attempts = int(loop["max_attempts"])
        if "include_optional" in loop:
            self.loop.include_optional = bool(loop["include_optional"])

        mutator = data.get("mutator") or {}
        if "create_backup" in mutator:
            self.mutator.create_backup = bool(mutator["create_backup"])
        if "backup_dir" in mutator:
            self.mutator.backup_dir = mutator["backup_dir"]
        if "max_backups" in mutator:
            self.mutator.max_backups = int(mutator["max_backups"])
        if "strict_validation" in mutator:
            self.mutator.strict_validation = bool(mutator["strict_validation"])

        validator = data.get("validator") or {}
        if "cache_ttl" in validator:
            self.validator.cache_ttl = float(validator["cache_ttl"])
        if "timeout" in validator:
            self.validator.timeout = float(validator["timeout"])
        if "performance_threshold_ms" in validator:
            self.validator.performance_threshold_ms = int(validator["performance_threshold_ms"])

        state = data.get("state") or {}
        if "state_path" in state:
            self.state.state_path = state["state_path"]
        if "activity_db" in state:
            self.state.activity_db = state["activity_db"]

        sandbox = data.get("sandbox") or {}
        if "max_cpu" in sandbox:
            self.sandbox.max_cpu = int(sandbox["max_cpu"])
        if "max_memory" in sandbox:
            self.sandbox.max_memory = int(sandbox["max_memory"])
        if "max_time" in sandbox:
            self.sandbox.max_time = int(sandbox["max_time"])
        if "enforce_safety" in sandbox:
            self.sandbox.enforce_safety = bool(sandbox["enforce_safety"])
        if "allowed_paths" in sandbox:
            self.sandbox.allowed_paths = list(sandbox["allowed_paths"])
        if "allowed_networks" in sandbox:
            self.sandbox.allowed_networks = list(sandbox["allowed_networks"])

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if max_attempts := os.environ.get("SPECORCH_MAX_ATTEMPTS"):
            self.loop.max_attempts = int(max_attempts)
        if state_path := os.environ.get("SPECORCH_STATE_PATH"):
            self.state.state_path = state_path
        if backup_dir := os.environ.get("SPECORCH_BACKUP_DIR"):
            self.mutator.backup_dir = backup_dir
        if timeout := os.environ.get("SPECORCH_VALIDATION_TIMEOUT"):
            self.validator.timeout = float(timeout)
        if os.environ.get("SPECORCH_INCLUDE_OPTIONAL", "").lower() in ("1", "true", "yes"):
            self.loop.include_optional = True

    def to_dict(self) -> dict[str, Any]:
        """Serializable view of the configuration."""
        return {
            "loop": {
                "max_attempts": self.loop.max_attempts,
                "include_optional": self.loop.include_optional,
            },
            "mutator": {
                "create_backup": self.mutator.create_backup,
                "backup_dir": self.mutator.backup_dir,
                "max_backups": self.mutator.max_backups,
                "strict_validation": self.mutator.strict_validation,
            },
            "validator": {
                "cache_ttl": self.validator.cache_ttl,
                "timeout": self.validator.timeout,
                "performance_threshold_ms": self.validator.performance_threshold_ms,
            },
            "state": {
                "state_path": self.state.state_path,
                "activity_db": self.state.activity_db,
            },
            "sandbox": {
                "max_cpu": self.sandbox.max_cpu,
                "max_memory": self.sandbox.max_memory,
                "max_time": self.sandbox.max_time,
                "enforce_safety": self.sandbox.enforce_safety,
                "allowed_paths": self.sandbox.allowed_paths,
                "allowed_networks": self.sandbox.allowed_networks,
            },
        }

    def save_project_config(self, project_dir: Path | None = None) -> Path:
        """Save current configuration to the project config file."""
        path = (project_dir or Path.cwd()) / self.PROJECT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)

        return path
