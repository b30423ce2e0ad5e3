"""Tests for the CLI and process entry point."""

import os

import pytest

from forumrelay.bot import RelayBot
from forumrelay.cli import main
from forumrelay.errors import InitializationError
from forumrelay.main import build_bot


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point config lookups at empty directories."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ.keys()):
        if key.startswith(("FORUMRELAY_", "TELEGRAM_")):
            monkeypatch.delenv(key, raising=False)
    # ``--data-dir`` writes os.environ directly; registering the key here
    # makes monkeypatch remove it again on teardown.
    monkeypatch.setenv("FORUMRELAY_DATA_DIR", str(tmp_path / "unused"))
    return monkeypatch


class TestUsersCommand:
    def test_prints_mappings(self, isolated_env, tmp_path, capsys) -> None:
        data = tmp_path / "data"
        data.mkdir()
        (data / "user_info.txt").write_text("2\n11---42\n12---alice---43\n", "utf-8")

        main(["--data-dir", str(data), "users"])

        out = capsys.readouterr().out
        assert "Admin topic: 2" in out
        assert "42\t11\t-" in out
        assert "43\t12\talice" in out

    def test_empty_ledger(self, isolated_env, tmp_path, capsys) -> None:
        main(["--data-dir", str(tmp_path / "none"), "users"])
        assert "No user mappings found." in capsys.readouterr().out

    def test_no_command_exits(self, isolated_env) -> None:
        with pytest.raises(SystemExit):
            main([])


class TestBuildBot:
    def test_missing_settings(self, isolated_env) -> None:
        with pytest.raises(InitializationError) as exc_info:
            build_bot()
        assert "TELEGRAM_BOT_TOKEN" in str(exc_info.value)
        assert "TELEGRAM_BOT_OWNER_ID" in str(exc_info.value)

    def test_builds_from_env(self, isolated_env, tmp_path) -> None:
        isolated_env.setenv("TELEGRAM_BOT_TOKEN", "token")
        isolated_env.setenv("TELEGRAM_GROUP_ID", "-1001")
        isolated_env.setenv("TELEGRAM_BOT_OWNER_ID", "999")
        isolated_env.setenv("FORUMRELAY_DATA_DIR", str(tmp_path / "data"))
        isolated_env.setenv("LOG_TOPIC_NAME", "Audit")

        bot = build_bot()

        assert isinstance(bot, RelayBot)
        assert bot.store.path == tmp_path / "data" / "user_info.txt"
        assert bot.log_topic.name == "Audit"
