"""Telegram bot that downloads YouTube and TikTok videos with a quality picker."""

__version__ = "0.2.0"
