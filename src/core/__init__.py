"""Core domain package for triagedesk.

Core contains filtering, queueing, reply tracking and pause reconciliation
without any Telegram or filesystem-specific code, keeping the triage logic
portable.
"""
