"""Console rendering of the triage queue.

Keeping formatting here prevents drift between the live view and the CLI
commands and keeps labels consistent regardless of where they are shown.
"""

from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional, Sequence

from rich.table import Table
from rich.text import Text

from core.grouping import group_for_display
from core.models import Message, TriageSnapshot
from core.reply_tracker import ReplyTracker

SNIPPET_CHARS = 120


def format_channel_label(channel_id: str, channel_aliases: Mapping[str, str]) -> str:
    """Return a human-friendly channel label, using configured aliases."""

    alias = channel_aliases.get(channel_id)
    if not alias:
        return channel_id
    return f"{alias} ({channel_id})"


def format_excerpt(group: Sequence[Message], snippet_chars: int = SNIPPET_CHARS) -> str:
    """Summarize a display group: the first text found plus an album counter."""

    text = next((message.text for message in group if message.text), None)
    excerpt = " ".join(text.split()) if text else "[media]"
    if len(excerpt) > snippet_chars:
        excerpt = excerpt[: snippet_chars - 1].rstrip() + "…"
    if len(group) > 1:
        excerpt = f"{excerpt} (+{len(group) - 1} in album)"
    return excerpt


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp).astimezone().strftime("%H:%M:%S %d-%m-%Y")


def render_snapshot(
    snapshot: TriageSnapshot,
    channel_aliases: Mapping[str, str],
    replies: Optional[ReplyTracker] = None,
) -> Table:
    """Build the rich table shown by the live triage view."""

    table = Table(
        title=f"Triage queue: {len(snapshot.queue)} message(s) from {len(snapshot.by_channel)} channel(s)",
        title_justify="left",
        expand=True,
    )
    table.add_column("time", no_wrap=True)
    table.add_column("channel", no_wrap=True)
    table.add_column("sender", no_wrap=True)
    table.add_column("message", ratio=1)
    table.add_column("status", no_wrap=True)

    for group in group_for_display(snapshot.queue):
        head = group[0]
        status = Text()
        if replies is not None and any(replies.is_replied(m.channel_id, m.id) for m in group):
            status.append("replied", style="green")
        elif head.channel_id in snapshot.paused:
            status.append("paused", style="yellow")
        table.add_row(
            _format_time(head.timestamp),
            format_channel_label(head.channel_id, channel_aliases),
            head.sender_id or "-",
            Text(format_excerpt(group)),
            status,
        )
    return table
