from __future__ import annotations

from datetime import datetime, timezone

from adapters.telegram_mapper import build_message


class DummyReply:
    def __init__(self, reply_to_msg_id: "int | None") -> None:
        self.reply_to_msg_id = reply_to_msg_id


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: str,
        sender_id: "int | None" = None,
        grouped_id: "int | None" = None,
        reply_to=None,
        media=None,
        media_unread: bool = False,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self.sender_id = sender_id
        self.grouped_id = grouped_id
        self.reply_to = reply_to
        self.media = media
        self.media_unread = media_unread
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_build_message_maps_identity_and_text() -> None:
    message = DummyMessage(chat_id=-100123, message_id=10, text="hello", sender_id=42)

    result = build_message(message)

    assert result.key == ("-100123", 10)
    assert result.sender_id == "42"
    assert result.text == "hello"
    assert result.timestamp == 1704067200
    assert result.album_group_id is None
    assert result.reply_to_message_id is None
    assert not result.has_unread_markers
    assert result.attachments == ()


def test_build_message_media_only_album_member() -> None:
    media = object()
    message = DummyMessage(
        chat_id=-100123,
        message_id=11,
        text="",
        grouped_id=13579,
        media=media,
        media_unread=True,
    )

    result = build_message(message)

    assert result.text is None
    assert result.album_group_id == "13579"
    assert result.attachments == (media,)
    assert result.has_unread_markers


def test_build_message_reply_reference() -> None:
    message = DummyMessage(chat_id=-4618248704, message_id=12, text="done", reply_to=DummyReply(7))
    assert build_message(message).reply_to_message_id == 7
