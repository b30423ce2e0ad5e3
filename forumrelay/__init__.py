"""Relay private Telegram chats into per-user forum topics."""

__version__ = "0.1.0"
