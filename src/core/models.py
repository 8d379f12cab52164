"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

# (channel_id, message_id): identity of a message for dedup and lookups.
MessageKey = Tuple[str, int]


@dataclass(frozen=True)
class Message:
    """One inbound message as seen by the triage engine."""

    channel_id: str
    id: int
    timestamp: int
    sender_id: Optional[str] = None
    text: Optional[str] = None
    album_group_id: Optional[str] = None
    reply_to_message_id: Optional[int] = None
    has_unread_markers: bool = False
    attachments: tuple = field(default=(), compare=False)

    @property
    def key(self) -> MessageKey:
        return (self.channel_id, self.id)


@dataclass(frozen=True)
class ReadState:
    """Read-state snapshot reported by the messaging backend for one channel."""

    last_acknowledged_message_id: Optional[int]
    unread_count: int


@dataclass(frozen=True)
class PausedChannelEntry:
    """A channel suspended in assist mode until its latest item is handled."""

    channel_id: str
    paused_at_timestamp: float
    suspending_message_id: int
    suspending_has_unread_markers: bool = False


@dataclass(frozen=True)
class TriageSnapshot:
    """Read-only view of the triage state for presentation layers."""

    queue: Tuple[Message, ...]
    by_channel: Mapping[str, Tuple[Message, ...]]
    paused: Mapping[str, PausedChannelEntry]
