"""Tests for .env loading into the process environment."""

import os

import pytest

from forumrelay.config import config_dir, data_dir_default, load_config


@pytest.fixture
def env_files(tmp_path, monkeypatch):
    """A working directory and an XDG config home, both initially empty."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    user_dir = tmp_path / "config" / "forumrelay"
    user_dir.mkdir(parents=True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.chdir(workdir)
    for key in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_GROUP_ID", "LOG_TOPIC_NAME"):
        monkeypatch.delenv(key, raising=False)
    yield workdir / ".env", user_dir / "config.env"
    # load_dotenv writes os.environ directly.
    for key in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_GROUP_ID", "LOG_TOPIC_NAME"):
        os.environ.pop(key, None)


class TestLoadConfig:
    def test_local_env_wins_over_user_config(self, env_files):
        local, user = env_files
        local.write_text("TELEGRAM_BOT_TOKEN=local-token\n")
        user.write_text("TELEGRAM_BOT_TOKEN=user-token\nTELEGRAM_GROUP_ID=-1001\n")

        loaded = load_config()

        assert loaded == [local, user]
        assert os.environ["TELEGRAM_BOT_TOKEN"] == "local-token"
        assert os.environ["TELEGRAM_GROUP_ID"] == "-1001"

    def test_real_environment_is_not_overridden(self, env_files, monkeypatch):
        local, _ = env_files
        local.write_text('LOG_TOPIC_NAME="From File"\n')
        monkeypatch.setenv("LOG_TOPIC_NAME", "From Env")

        load_config()

        assert os.environ["LOG_TOPIC_NAME"] == "From Env"

    def test_quoted_topic_name_with_spaces(self, env_files):
        _, user = env_files
        user.write_text("LOG_TOPIC_NAME='Relay Log # main'\n")

        assert load_config() == [user]
        assert os.environ["LOG_TOPIC_NAME"] == "Relay Log # main"

    def test_no_files(self, env_files):
        assert load_config() == []
        assert "TELEGRAM_BOT_TOKEN" not in os.environ


class TestDirectories:
    def test_config_dir_respects_xdg(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert config_dir() == tmp_path / "forumrelay"

    def test_data_dir_respects_xdg(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
        assert data_dir_default() == tmp_path / "forumrelay"

    def test_data_dir_falls_back_to_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert data_dir_default() == tmp_path / ".local" / "share" / "forumrelay"
