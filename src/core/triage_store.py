"""Bounded, timestamp-ordered triage queue (core domain)."""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from core.models import Message, MessageKey

LOGGER = logging.getLogger(__name__)


def _newest_first(messages: List[Message]) -> List[Message]:
    # sorted() is stable, so equal timestamps keep insertion order.
    return sorted(messages, key=lambda message: -message.timestamp)


class TriageStore:
    """Admitted messages, kept globally and per channel.

    Both views hold the same messages in the same order (timestamp
    descending). Every mutation updates both before returning, and a channel
    without messages has no key at all in the per-channel view.
    """

    def __init__(self, max_messages: int) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._max = max_messages
        self._queue: List[Message] = []
        self._by_channel: Dict[str, List[Message]] = {}
        self._keys: set[MessageKey] = set()

    @property
    def max_messages(self) -> int:
        return self._max

    @property
    def queue(self) -> Tuple[Message, ...]:
        return tuple(self._queue)

    @property
    def channel_ids(self) -> Tuple[str, ...]:
        return tuple(self._by_channel)

    def by_channel(self, channel_id: str) -> Tuple[Message, ...]:
        return tuple(self._by_channel.get(channel_id, ()))

    def channels(self) -> Dict[str, Tuple[Message, ...]]:
        return {channel_id: tuple(messages) for channel_id, messages in self._by_channel.items()}

    def contains(self, channel_id: str, message_id: int) -> bool:
        return (channel_id, message_id) in self._keys

    def __len__(self) -> int:
        return len(self._queue)

    def add(self, message: Message) -> List[MessageKey]:
        """Insert a message and return the keys evicted by the size cap.

        Adding a key that is already queued changes nothing.
        """

        if message.key in self._keys:
            return []

        self._keys.add(message.key)
        self._queue = _newest_first(self._queue + [message])
        channel_queue = _newest_first(self._by_channel.get(message.channel_id, []) + [message])
        self._by_channel[message.channel_id] = channel_queue

        evicted = [m.key for m in self._queue[self._max :]]
        evicted.extend(m.key for m in channel_queue[self._max :] if m.key not in evicted)
        if evicted:
            self._drop(set(evicted))
            LOGGER.debug("Evicted %s message(s) over the cap of %s", len(evicted), self._max)
        return evicted

    def resolve(self, channel_id: str, message_id: int) -> bool:
        """Remove one message from both views; unknown keys are ignored."""

        key = (channel_id, message_id)
        if key not in self._keys:
            return False
        self._drop({key})
        return True

    def clear(self) -> Dict[str, int]:
        """Empty the store, returning the highest message id per affected channel."""

        max_ids = {
            channel_id: max(message.id for message in messages)
            for channel_id, messages in self._by_channel.items()
        }
        self._queue = []
        self._by_channel = {}
        self._keys = set()
        return max_ids

    def expire_before(self, cutoff_timestamp: int) -> List[MessageKey]:
        """Drop messages older than the cutoff and return their keys."""

        expired = [message.key for message in self._queue if message.timestamp < cutoff_timestamp]
        if expired:
            self._drop(set(expired))
        return expired

    def _drop(self, keys: set[MessageKey]) -> None:
        self._queue = [message for message in self._queue if message.key not in keys]
        for channel_id in {channel_id for channel_id, _ in keys}:
            remaining = [m for m in self._by_channel.get(channel_id, []) if m.key not in keys]
            if remaining:
                self._by_channel[channel_id] = remaining
            else:
                self._by_channel.pop(channel_id, None)
        self._keys -= keys
