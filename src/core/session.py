"""Triage session: routes transport and user events into the core components.

This module is integration-agnostic. It only relies on ports for the
messaging backend and settings persistence, so the same session can be
driven by Telegram, by tests, or by any future frontend.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from core.config import TriageConfig
from core.filter_engine import FilterSettings, Mode, rejection_reason
from core.models import Message, MessageKey, TriageSnapshot
from core.pause_monitor import PauseMonitor
from core.ports import MarkReadPort, ReadStatePort, ReplySenderPort
from core.reply_tracker import ReplyTracker
from core.settings_store import SettingsStore
from core.triage_store import TriageStore

LOGGER = logging.getLogger(__name__)


class TriageSession:
    """Owns the triage state of one session and serializes every update.

    Every public method except the coroutines is a single synchronous step,
    so handlers never interleave. Calls to the backend's mark-read operation
    are fire-and-forget tasks; their completion only requests a pause
    reconciliation and never rolls back the local queue.
    """

    def __init__(
        self,
        settings_store: SettingsStore,
        read_state: ReadStatePort,
        mark_read: MarkReadPort,
        reply_sender: ReplySenderPort,
        config: TriageConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings_store = settings_store
        self._mark_read = mark_read
        self._reply_sender = reply_sender
        self._config = config
        self._clock = clock
        self._store = TriageStore(config.max_messages)
        self._replies = ReplyTracker()
        self._monitor = PauseMonitor(
            read_state,
            self._replies,
            interval_seconds=config.reconcile_interval_seconds,
            clock=clock,
        )
        self._replying_to: Optional[Message] = None
        self._mark_read_tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def settings(self) -> FilterSettings:
        return self._settings_store.current

    @property
    def store(self) -> TriageStore:
        return self._store

    @property
    def replies(self) -> ReplyTracker:
        return self._replies

    @property
    def monitor(self) -> PauseMonitor:
        return self._monitor

    @property
    def replying_to(self) -> Optional[Message]:
        return self._replying_to

    @property
    def closed(self) -> bool:
        return self._closed

    # Lifecycle

    async def start(self) -> None:
        if self.settings.mode is Mode.ASSIST:
            self._monitor.start()

    async def close(self) -> None:
        """Stop background work and drop composer state. Safe to call twice."""

        if self._closed:
            return
        self._closed = True
        self._replying_to = None
        await self._monitor.stop()
        pending = list(self._mark_read_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._mark_read_tasks.clear()
        LOGGER.info("Triage session closed")

    # Inbound events

    def handle_message(self, message: Message) -> bool:
        """Filter an inbound message and queue it; returns True when admitted."""

        if self._config.message_ttl_seconds > 0:
            cutoff = int(self._clock()) - self._config.message_ttl_seconds
            expired = self._store.expire_before(cutoff)
            if expired:
                LOGGER.info("Expired %s triage item(s)", len(expired))

        settings = self.settings
        reason = rejection_reason(message, settings)
        if reason is not None:
            LOGGER.debug("Skip %s/%s: %s", message.channel_id, message.id, reason)
            return False

        # Redelivered messages must not re-pause a channel that already resumed.
        if self._store.contains(message.channel_id, message.id):
            return False

        evicted = self._store.add(message)
        if message.key in evicted:
            LOGGER.debug("Skip %s/%s: older than every queued item", message.channel_id, message.id)
            return False
        if settings.mode is Mode.ASSIST:
            self._monitor.pause(message)
        LOGGER.info("Queued message %s from channel %s", message.id, message.channel_id)
        return True

    def observe_outgoing(self, message: Message) -> None:
        """Record replies sent from any client as handling the replied-to item."""

        if message.reply_to_message_id is None:
            return
        self.mark_replied(message.channel_id, message.reply_to_message_id)
        self.request_reconcile()

    def request_reconcile(self) -> None:
        """Ask for an immediate pause check, e.g. after a read-state update."""

        if self._closed or self.settings.mode is not Mode.ASSIST:
            return
        self._monitor.request_reconcile()

    # User actions

    def resolve(self, channel_id: str, message_id: int) -> None:
        """Remove one item from the queue and acknowledge it on the backend."""

        removed = self._store.resolve(channel_id, message_id)
        if self._replying_to is not None and self._replying_to.key == (channel_id, message_id):
            self._replying_to = None
        if removed:
            self._dispatch_mark_read(channel_id, message_id)

    def clear(self) -> list[str]:
        """Empty the queue and acknowledge every affected channel once."""

        max_ids = self._store.clear()
        self._replying_to = None
        for channel_id, max_id in max_ids.items():
            self._dispatch_mark_read(channel_id, max_id)
        return list(max_ids)

    def mark_replied(self, channel_id: str, message_id: int) -> None:
        self._replies.mark_replied(channel_id, message_id)

    def is_replied(self, channel_id: str, message_id: int) -> bool:
        return self._replies.is_replied(channel_id, message_id)

    def begin_reply(self, message: Message) -> None:
        self._replying_to = message

    def cancel_reply(self) -> None:
        self._replying_to = None

    async def send_reply(self, text: str) -> bool:
        """Send the composer text as a reply to the selected item."""

        target = self._replying_to
        if target is None or not text.strip():
            return False

        await self._reply_sender.send_reply(target.channel_id, text, target.id)
        self.mark_replied(target.channel_id, target.id)
        if self._replying_to is target:
            self._replying_to = None
        if self.settings.auto_mark_read:
            self._dispatch_mark_read(target.channel_id, target.id)
        self.request_reconcile()
        return True

    async def update_settings(self, settings: FilterSettings) -> FilterSettings:
        """Persist new settings and apply a mode change to the pause monitor."""

        previous_mode = self.settings.mode
        saved = self._settings_store.save(settings)
        if saved.mode is not previous_mode and not self._closed:
            if saved.mode is Mode.ASSIST:
                # Entries left from an earlier assist period are reconciled first.
                self._monitor.start()
            else:
                await self._monitor.stop()
            LOGGER.info("Mode switched to %s", saved.mode.value)
        return saved

    # Presentation

    def snapshot(self) -> TriageSnapshot:
        return TriageSnapshot(
            queue=self._store.queue,
            by_channel=self._store.channels(),
            paused=self._monitor.entries,
        )

    # Backend calls

    def _dispatch_mark_read(self, channel_id: str, max_message_id: int) -> None:
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._mark_read.mark_read(channel_id, max_message_id))
        task.add_done_callback(lambda done: self._on_mark_read_done(done, (channel_id, max_message_id)))
        self._mark_read_tasks.add(task)

    def _on_mark_read_done(self, task: asyncio.Task, key: MessageKey) -> None:
        self._mark_read_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.warning("Mark read failed for %s up to %s: %s", key[0], key[1], error)
        self.request_reconcile()

    @property
    def pending_mark_reads(self) -> int:
        return len(self._mark_read_tasks)
