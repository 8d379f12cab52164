"""Per-channel pause/resume reconciliation for assist mode (core domain).

In assist mode a channel is paused as soon as one of its messages is
surfaced. A background task periodically checks every paused channel and
resumes it once the surfaced message is known to be handled, either because
someone replied to it or because the backend read state has caught up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from core.models import Message, PausedChannelEntry, ReadState
from core.ports import ReadStatePort
from core.reply_tracker import ReplyTracker

LOGGER = logging.getLogger(__name__)


def read_state_says_handled(entry: PausedChannelEntry, read_state: ReadState) -> bool:
    """Check the backend read state against the suspending message.

    The acknowledged id is preferred. When the backend does not report one,
    an empty unread counter is accepted as long as the message itself carried
    no unread markers.
    """

    if read_state.last_acknowledged_message_id is not None:
        return read_state.last_acknowledged_message_id >= entry.suspending_message_id
    return read_state.unread_count == 0 and not entry.suspending_has_unread_markers


def is_handled(entry: PausedChannelEntry, read_state: Optional[ReadState], replied: bool) -> bool:
    """Any positive signal resumes the channel; a missing read state never does on its own."""

    if replied:
        return True
    if read_state is None:
        return False
    return read_state_says_handled(entry, read_state)


class PauseMonitor:
    """Tracks paused channels and resumes them on a fixed cadence."""

    def __init__(
        self,
        read_state: ReadStatePort,
        reply_tracker: ReplyTracker,
        interval_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._read_state = read_state
        self._replies = reply_tracker
        self._interval = interval_seconds
        self._clock = clock
        self._entries: Dict[str, PausedChannelEntry] = {}
        self._task: Optional[asyncio.Task] = None
        self._passes: set[asyncio.Task] = set()

    @property
    def entries(self) -> Dict[str, PausedChannelEntry]:
        return dict(self._entries)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_paused(self, channel_id: str) -> bool:
        return channel_id in self._entries

    def pause(self, message: Message) -> PausedChannelEntry:
        """Pause the message's channel, or move an existing pause onto this message."""

        already_paused = message.channel_id in self._entries
        entry = PausedChannelEntry(
            channel_id=message.channel_id,
            paused_at_timestamp=self._clock(),
            suspending_message_id=message.id,
            suspending_has_unread_markers=message.has_unread_markers,
        )
        self._entries[message.channel_id] = entry
        if already_paused:
            LOGGER.debug("Channel %s now waits on message %s", message.channel_id, message.id)
        else:
            LOGGER.info("Paused channel %s on message %s", message.channel_id, message.id)
        return entry

    async def reconcile(self) -> List[str]:
        """Run one reconciliation pass and return the channels that resumed."""

        resumed: List[str] = []
        for channel_id in list(self._entries):
            entry = self._entries.get(channel_id)
            if entry is None:
                continue
            replied = self._replies.is_replied(channel_id, entry.suspending_message_id)
            read_state = None if replied else await self._fetch_read_state(channel_id)
            # A newer admission may have replaced the entry while we waited.
            if self._entries.get(channel_id) is not entry:
                continue
            if not is_handled(entry, read_state, replied):
                continue
            del self._entries[channel_id]
            resumed.append(channel_id)
            LOGGER.info(
                "Resumed channel %s (message %s handled%s)",
                channel_id,
                entry.suspending_message_id,
                ", replied" if replied else "",
            )
        return resumed

    async def _fetch_read_state(self, channel_id: str) -> Optional[ReadState]:
        try:
            return await self._read_state.get_read_state(channel_id)
        except Exception:
            LOGGER.warning("Read state unavailable for channel %s", channel_id, exc_info=True)
            return None

    def start(self) -> None:
        """Start the periodic task; the first pass runs immediately."""

        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        LOGGER.info("Pause monitor started (interval=%ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the periodic task and any extra pass still in flight."""

        task, self._task = self._task, None
        pending = [task] if task is not None else []
        pending.extend(self._passes)
        self._passes.clear()
        for item in pending:
            item.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if task is not None:
            LOGGER.info("Pause monitor stopped")

    def request_reconcile(self) -> None:
        """Schedule one extra pass outside the periodic cadence."""

        if not self._entries:
            return
        task = asyncio.get_running_loop().create_task(self.reconcile())
        self._passes.add(task)
        task.add_done_callback(self._on_pass_done)

    def _on_pass_done(self, task: asyncio.Task) -> None:
        self._passes.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Pause reconciliation failed", exc_info=error)

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.reconcile()
            except Exception:
                LOGGER.exception("Pause reconciliation failed")
            await asyncio.sleep(self._interval)
