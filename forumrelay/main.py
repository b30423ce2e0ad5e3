"""Process entry point for the relay bot."""

from __future__ import annotations

import asyncio
import signal
import sys

import structlog

from forumrelay.bot import RelayBot
from forumrelay.errors import InitializationError
from forumrelay.log_config import configure_logging
from forumrelay.settings import settings

logger = structlog.get_logger(__name__)


def build_bot() -> RelayBot:
    """Create the bot from settings.

    Raises:
        InitializationError: A required setting is missing.
    """
    token = settings.telegram_bot_token()
    group_id = settings.telegram_group_id()
    owner_id = settings.telegram_owner_id()
    missing = [
        name
        for name, value in (
            ("TELEGRAM_BOT_TOKEN", token),
            ("TELEGRAM_GROUP_ID", group_id),
            ("TELEGRAM_BOT_OWNER_ID", owner_id),
        )
        if not value
    ]
    if missing:
        raise InitializationError(f"Missing required settings: {', '.join(missing)}")

    return RelayBot(
        bot_token=token,
        group_id=group_id,
        owner_id=owner_id,
        data_dir=settings.data_dir(),
        user_info_topic_name=settings.user_info_topic_name(),
        log_topic_name=settings.log_topic_name(),
        fallback_label=settings.fallback_label(),
        backup_keep=settings.backup_keep(),
        export_users_command=settings.export_users_command(),
        export_log_command=settings.export_log_command(),
    )


async def main() -> None:
    """Run the relay until SIGINT/SIGTERM."""
    bot = build_bot()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def shutdown_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await bot.start()
        logger.info("Relay running. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        await bot.stop()


def run() -> None:
    """Configure logging and run the relay. Exits with status 1 on
    initialization failure."""
    configure_logging()
    try:
        asyncio.run(main())
    except InitializationError as e:
        logger.error("Initialization failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
