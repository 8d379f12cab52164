"""Reply bookkeeping (core domain)."""

from __future__ import annotations

from core.models import MessageKey


class ReplyTracker:
    """Remember which triage items a human already replied to or acted on.

    The record only grows during a session. Keys may outlive the queue entry
    they refer to; lookups for such keys are harmless.
    """

    def __init__(self) -> None:
        self._replied: set[MessageKey] = set()

    def mark_replied(self, channel_id: str, message_id: int) -> None:
        self._replied.add((channel_id, message_id))

    def is_replied(self, channel_id: str, message_id: int) -> bool:
        return (channel_id, message_id) in self._replied

    def __len__(self) -> int:
        return len(self._replied)
