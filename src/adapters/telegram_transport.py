"""Telethon adapter for the messaging-backend ports.

Implements ReadStatePort, MarkReadPort and ReplySenderPort on one Telegram
user client.
"""

from __future__ import annotations

import logging
from typing import Optional

from telethon import functions, types

from core.models import ReadState

LOGGER = logging.getLogger(__name__)


class TelegramTransport:
    """Read state, acknowledgements and replies through a Telethon client."""

    def __init__(self, client) -> None:
        self._client = client
        self._peers: dict[str, object] = {}

    async def _resolve(self, channel_id: str):
        """Return the input peer for a channel id, or None when Telegram does not know it."""

        if channel_id in self._peers:
            return self._peers[channel_id]
        try:
            peer = await self._client.get_input_entity(int(channel_id))
        except ValueError:
            # Raised both for non-numeric ids and for peers missing from the session cache.
            LOGGER.debug("Cannot resolve channel %s", channel_id)
            return None
        self._peers[channel_id] = peer
        return peer

    async def get_read_state(self, channel_id: str) -> Optional[ReadState]:
        peer = await self._resolve(channel_id)
        if peer is None:
            return None
        result = await self._client(
            functions.messages.GetPeerDialogsRequest(peers=[types.InputDialogPeer(peer=peer)])
        )
        if not result.dialogs:
            return None
        dialog = result.dialogs[0]
        # 0 means Telegram has no read marker for this dialog yet.
        last_read = getattr(dialog, "read_inbox_max_id", 0) or None
        return ReadState(
            last_acknowledged_message_id=last_read,
            unread_count=int(getattr(dialog, "unread_count", 0) or 0),
        )

    async def mark_read(self, channel_id: str, max_message_id: int) -> None:
        peer = await self._resolve(channel_id)
        if peer is None:
            raise LookupError(f"Unknown channel {channel_id}")
        await self._client.send_read_acknowledge(peer, max_id=max_message_id)
        LOGGER.debug("Marked %s read up to %s", channel_id, max_message_id)

    async def send_reply(self, channel_id: str, text: str, reply_to_message_id: int) -> None:
        peer = await self._resolve(channel_id)
        if peer is None:
            raise LookupError(f"Unknown channel {channel_id}")
        await self._client.send_message(peer, text, reply_to=reply_to_message_id)
