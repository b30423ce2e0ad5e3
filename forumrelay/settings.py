"""Centralized environment configuration for forumrelay.

Relay-specific knobs use the FORUMRELAY_ prefix. Telegram credentials and the
topic names keep their historical unprefixed names so existing deployments
keep working.

Usage:
    from forumrelay.settings import settings

    group_id = settings.telegram_group_id()
    keep = settings.backup_keep()
"""

from __future__ import annotations

import os


def _get(name: str, default: str = "") -> str:
    """Get an environment variable value."""
    return os.environ.get(name, "").strip() or default


def _get_int(name: str, default: int = 0) -> int:
    """Get an integer environment variable."""
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    """Centralized settings for the relay bot."""

    # -------------------------------------------------------------------------
    # Telegram
    # -------------------------------------------------------------------------

    @staticmethod
    def telegram_bot_token() -> str:
        """Bot API token.

        Env: TELEGRAM_BOT_TOKEN (no prefix - external service credential)
        """
        return _get("TELEGRAM_BOT_TOKEN")

    @staticmethod
    def telegram_group_id() -> int:
        """Forum supergroup that hosts one topic per user.

        Env: TELEGRAM_GROUP_ID
        """
        return _get_int("TELEGRAM_GROUP_ID")

    @staticmethod
    def telegram_owner_id() -> int:
        """Operator allowed to run export commands. Receives exported files.

        Env: TELEGRAM_BOT_OWNER_ID
        """
        return _get_int("TELEGRAM_BOT_OWNER_ID")

    @staticmethod
    def user_info_topic_name() -> str:
        """Name of the administrative topic that lists new users.

        Env: USER_INFO_TOPIC_NAME (default: User Info)
        """
        return _get("USER_INFO_TOPIC_NAME", default="User Info")

    @staticmethod
    def log_topic_name() -> str:
        """Name of the topic that mirrors the relay log.

        Env: LOG_TOPIC_NAME (default: Relay Log)
        """
        return _get("LOG_TOPIC_NAME", default="Relay Log")

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    @staticmethod
    def data_dir() -> str:
        """Directory holding the ledgers and the backup directory.

        Env: FORUMRELAY_DATA_DIR

        Default depends on context:
            - Source checkout (pyproject.toml exists): ``data/`` next to it
            - Installed package: ``~/.local/share/forumrelay/`` (XDG_DATA_HOME)
        """
        value = _get("FORUMRELAY_DATA_DIR")
        if value:
            return os.path.abspath(value)

        package_parent = os.path.join(os.path.dirname(__file__), "..")
        if os.path.isfile(os.path.join(package_parent, "pyproject.toml")):
            return os.path.abspath(os.path.join(package_parent, "data"))

        from forumrelay.config import data_dir_default

        return str(data_dir_default())

    @staticmethod
    def backup_keep() -> int:
        """Number of export backups retained in ``backup/export``.

        Env: FORUMRELAY_BACKUP_KEEP (default: 10)
        """
        return max(1, _get_int("FORUMRELAY_BACKUP_KEEP", default=10))

    # -------------------------------------------------------------------------
    # Relay behaviour
    # -------------------------------------------------------------------------

    @staticmethod
    def fallback_label() -> str:
        """Topic label prefix for users without a username.

        Env: FORUMRELAY_FALLBACK_LABEL (default: User)
        """
        return _get("FORUMRELAY_FALLBACK_LABEL", default="User")

    @staticmethod
    def export_users_command() -> str:
        """Command text that exports the user ledger (user info topic only).

        Env: FORUMRELAY_EXPORT_USERS_COMMAND (default: export users)
        """
        return _get("FORUMRELAY_EXPORT_USERS_COMMAND", default="export users")

    @staticmethod
    def export_log_command() -> str:
        """Command text that exports the relay log (log topic only).

        Env: FORUMRELAY_EXPORT_LOG_COMMAND (default: export log)
        """
        return _get("FORUMRELAY_EXPORT_LOG_COMMAND", default="export log")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

        Env: FORUMRELAY_LOG_LEVEL (default: INFO)
        """
        return _get("FORUMRELAY_LOG_LEVEL", default="INFO").upper()

    @staticmethod
    def log_format() -> str:
        """Log format: "console" for dev-friendly, "json" for structured.

        Env: FORUMRELAY_LOG_FORMAT (default: console)
        """
        return _get("FORUMRELAY_LOG_FORMAT", default="console").lower()


# Singleton instance for convenient imports
settings = Settings()
