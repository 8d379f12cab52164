"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the triage core.
"""

from __future__ import annotations

from typing import Optional

from telethon.tl.custom import Message as TelegramMessage

from core.models import Message


def channel_id_from_message(message: TelegramMessage) -> str:
    """Use the marked chat id (e.g. -100<channel>) as the stable channel id."""

    return str(message.chat_id)


def _reply_to_message_id(message: TelegramMessage) -> Optional[int]:
    reply_to = getattr(message, "reply_to", None)
    if not reply_to:
        return None
    return getattr(reply_to, "reply_to_msg_id", None)


def _optional_str(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def build_message(message: TelegramMessage) -> Message:
    """Build a core Message from a Telethon Message."""

    text = message.raw_text or None
    media = getattr(message, "media", None)

    return Message(
        channel_id=channel_id_from_message(message),
        id=message.id,
        timestamp=int(message.date.timestamp()),
        sender_id=_optional_str(getattr(message, "sender_id", None)),
        text=text,
        album_group_id=_optional_str(getattr(message, "grouped_id", None)),
        reply_to_message_id=_reply_to_message_id(message),
        # Unread mentions and unopened voice/video notes carry this flag.
        has_unread_markers=bool(getattr(message, "media_unread", False)),
        attachments=(media,) if media is not None else (),
    )
