"""Stepcast · scheduled, auto-incrementing number dispatch to a Telegram channel."""

__version__ = "0.3.0"
