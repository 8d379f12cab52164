"""Adapters binding the triage core to Telegram, files and the console."""
