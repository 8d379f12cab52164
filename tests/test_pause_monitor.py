from __future__ import annotations

import asyncio
from typing import Optional

from core.models import Message, PausedChannelEntry, ReadState
from core.pause_monitor import PauseMonitor, is_handled, read_state_says_handled
from core.reply_tracker import ReplyTracker


class FakeReadState:
    def __init__(self) -> None:
        self.states: dict[str, Optional[ReadState]] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    async def get_read_state(self, channel_id: str) -> Optional[ReadState]:
        self.calls.append(channel_id)
        if channel_id in self.failing:
            raise ConnectionError("backend unavailable")
        return self.states.get(channel_id)


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _message(channel_id: str, message_id: int, unread: bool = False) -> Message:
    return Message(channel_id=channel_id, id=message_id, timestamp=100, has_unread_markers=unread)


def _monitor(read_state: FakeReadState, replies: Optional[ReplyTracker] = None, clock=None) -> PauseMonitor:
    return PauseMonitor(
        read_state,
        replies if replies is not None else ReplyTracker(),
        interval_seconds=10,
        clock=clock if clock is not None else Clock(),
    )


def _entry(message_id: int, unread: bool = False) -> PausedChannelEntry:
    return PausedChannelEntry("c", 0.0, message_id, unread)


def test_read_state_prefers_acknowledged_id() -> None:
    assert read_state_says_handled(_entry(7), ReadState(7, 3))
    assert not read_state_says_handled(_entry(7), ReadState(6, 0))


def test_read_state_falls_back_to_unread_count_and_markers() -> None:
    assert read_state_says_handled(_entry(7), ReadState(None, 0))
    assert not read_state_says_handled(_entry(7), ReadState(None, 2))
    assert not read_state_says_handled(_entry(7, unread=True), ReadState(None, 0))


def test_reply_wins_even_without_read_state() -> None:
    assert is_handled(_entry(7), None, replied=True)
    assert not is_handled(_entry(7), None, replied=False)


def test_pause_then_update_replaces_suspending_message() -> None:
    clock = Clock(1000.0)
    monitor = _monitor(FakeReadState(), clock=clock)

    monitor.pause(_message("g2", 7))
    clock.now = 1005.0
    entry = monitor.pause(_message("g2", 9, unread=True))

    assert monitor.is_paused("g2")
    assert entry == PausedChannelEntry("g2", 1005.0, 9, True)
    assert monitor.entries == {"g2": entry}


def test_channel_stays_paused_until_reply_recorded() -> None:
    read_state = FakeReadState()
    read_state.states["g2"] = ReadState(last_acknowledged_message_id=6, unread_count=1)
    replies = ReplyTracker()
    monitor = _monitor(read_state, replies)
    monitor.pause(_message("g2", 7))

    assert asyncio.run(monitor.reconcile()) == []
    assert monitor.is_paused("g2")

    replies.mark_replied("g2", 7)
    assert asyncio.run(monitor.reconcile()) == ["g2"]
    assert not monitor.is_paused("g2")


def test_acknowledgement_resumes_channel() -> None:
    read_state = FakeReadState()
    monitor = _monitor(read_state)
    monitor.pause(_message("g2", 7))

    read_state.states["g2"] = ReadState(last_acknowledged_message_id=7, unread_count=0)

    assert asyncio.run(monitor.reconcile()) == ["g2"]


def test_unknown_channel_is_left_paused() -> None:
    monitor = _monitor(FakeReadState())
    monitor.pause(_message("gone", 3))

    assert asyncio.run(monitor.reconcile()) == []
    assert monitor.is_paused("gone")


def test_failing_read_state_does_not_block_other_channels() -> None:
    read_state = FakeReadState()
    read_state.failing.add("bad")
    read_state.states["ok"] = ReadState(None, 0)
    monitor = _monitor(read_state)
    monitor.pause(_message("bad", 1))
    monitor.pause(_message("ok", 1))

    assert asyncio.run(monitor.reconcile()) == ["ok"]
    assert monitor.is_paused("bad")


def test_reply_skips_read_state_query() -> None:
    read_state = FakeReadState()
    replies = ReplyTracker()
    replies.mark_replied("g2", 7)
    monitor = _monitor(read_state, replies)
    monitor.pause(_message("g2", 7))

    asyncio.run(monitor.reconcile())

    assert read_state.calls == []


def test_entry_replaced_during_query_is_not_resumed() -> None:
    class RacingReadState(FakeReadState):
        def __init__(self) -> None:
            super().__init__()
            self.monitor: Optional[PauseMonitor] = None

        async def get_read_state(self, channel_id: str) -> Optional[ReadState]:
            # A newer message arrives while the backend answers for the old one.
            self.monitor.pause(_message(channel_id, 8))
            return ReadState(last_acknowledged_message_id=7, unread_count=0)

    read_state = RacingReadState()
    monitor = _monitor(read_state)
    read_state.monitor = monitor
    monitor.pause(_message("g2", 7))

    assert asyncio.run(monitor.reconcile()) == []
    assert monitor.entries["g2"].suspending_message_id == 8


def test_periodic_task_resumes_and_stops_cleanly() -> None:
    async def scenario() -> None:
        read_state = FakeReadState()
        replies = ReplyTracker()
        monitor = PauseMonitor(read_state, replies, interval_seconds=0.01)
        monitor.pause(_message("g2", 7))

        monitor.start()
        assert monitor.running
        await asyncio.sleep(0.03)
        assert monitor.is_paused("g2")

        replies.mark_replied("g2", 7)
        await asyncio.sleep(0.05)
        assert not monitor.is_paused("g2")

        await monitor.stop()
        assert not monitor.running

    asyncio.run(scenario())


def test_request_reconcile_runs_single_pass() -> None:
    async def scenario() -> None:
        read_state = FakeReadState()
        read_state.states["g2"] = ReadState(7, 0)
        monitor = _monitor(read_state)
        monitor.pause(_message("g2", 7))

        monitor.request_reconcile()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert not monitor.is_paused("g2")
        assert not monitor.running
        await monitor.stop()

    asyncio.run(scenario())


def test_shared_empty_tracker_reaches_monitor() -> None:
    replies = ReplyTracker()
    assert len(replies) == 0
    monitor = _monitor(FakeReadState(), replies)
    monitor.pause(_message("g2", 7))

    replies.mark_replied("g2", 7)

    assert asyncio.run(monitor.reconcile()) == ["g2"]
