"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from specorch.core import defaults as D
from specorch.core.config import Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "SPECORCH_MAX_ATTEMPTS",
        "SPECORCH_STATE_PATH",
        "SPECORCH_BACKUP_DIR",
        "SPECORCH_VALIDATION_TIMEOUT",
        "SPECORCH_INCLUDE_OPTIONAL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_user_config(tmp_path):
    return tmp_path / "home" / "config.yaml"


def write_project_config(project_dir, text: str):
    path = project_dir / ".specorch" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestConfig:
    def test_defaults(self, tmp_path, no_user_config):
        config = Config.load(project_dir=tmp_path, user_config=no_user_config)

        assert config.loop.max_attempts == D.DEFAULT_MAX_ATTEMPTS == 3
        assert config.mutator.backup_dir == ".specorch/backups"
        assert config.mutator.strict_validation
        assert config.validator.cache_ttl == 5.0
        assert config.sandbox.max_time == 60_000

    def test_project_overrides_user(self, tmp_path):
        user = tmp_path / "home" / "config.yaml"
        user.parent.mkdir()
        user.write_text("loop:\n  max_attempts: 5\nvalidator:\n  timeout: 2\n")
        write_project_config(tmp_path, "loop:\n  max_attempts: 7\n")

        config = Config.load(project_dir=tmp_path, user_config=user)

        assert config.loop.max_attempts == 7
        assert config.validator.timeout == 2.0

    def test_env_overrides_files(self, tmp_path, no_user_config, monkeypatch):
        write_project_config(tmp_path, "loop:\n  max_attempts: 7\n")
        monkeypatch.setenv("SPECORCH_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("SPECORCH_INCLUDE_OPTIONAL", "yes")
        monkeypatch.setenv("SPECORCH_BACKUP_DIR", "/tmp/specorch-backups")

        config = Config.load(project_dir=tmp_path, user_config=no_user_config)

        assert config.loop.max_attempts == 2
        assert config.loop.include_optional
        assert config.mutator.backup_dir == "/tmp/specorch-backups"

    def test_null_section(self, tmp_path, no_user_config):
        write_project_config(tmp_path, "loop:\nsandbox:\n  max_time: 1000\n")

        config = Config.load(project_dir=tmp_path, user_config=no_user_config)

        assert config.loop.max_attempts == 3
        assert config.sandbox.max_time == 1000

    @pytest.mark.parametrize("text", ["loop: [unclosed\n", "- just\n- a list\n"])
    def test_unusable_file_is_ignored(self, tmp_path, no_user_config, text):
        write_project_config(tmp_path, text)

        config = Config.load(project_dir=tmp_path, user_config=no_user_config)

        assert config.to_dict() == Config().to_dict()

    def test_save_and_reload(self, tmp_path, no_user_config):
        config = Config()
        config.loop.max_attempts = 4
        config.sandbox.allowed_paths = ["/srv/app"]

        path = config.save_project_config(tmp_path)
        reloaded = Config.load(project_dir=tmp_path, user_config=no_user_config)

        assert path == tmp_path / ".specorch" / "config.yaml"
        assert reloaded.to_dict() == config.to_dict()
