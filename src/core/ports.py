"""Ports (interfaces) used by the triage core.

Ports define the minimal contracts for the messaging backend and settings
persistence so that the core can be reused with different transports.
"""

from __future__ import annotations

from typing import Optional, Protocol

from core.models import ReadState


class ReadStatePort(Protocol):
    """Read-state queries against the messaging backend."""

    async def get_read_state(self, channel_id: str) -> Optional[ReadState]:
        """Return the channel's read state, or None when the channel is unknown."""
        ...


class MarkReadPort(Protocol):
    """Acknowledge messages on the messaging backend."""

    async def mark_read(self, channel_id: str, max_message_id: int) -> None:
        ...


class ReplySenderPort(Protocol):
    """Send a reply into the originating channel."""

    async def send_reply(self, channel_id: str, text: str, reply_to_message_id: int) -> None:
        ...


class SettingsBackend(Protocol):
    """Raw storage for the persisted settings document."""

    def read(self) -> Optional[str]:
        """Return the stored document, or None when nothing was ever saved."""
        ...

    def write(self, text: str) -> None:
        ...
