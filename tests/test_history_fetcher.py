from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import pytest

from core.config import DigestConfig, RetryConfig
from core.history import HistoryFetcher, persist_entries
from core.models import EntityInfo, IncomingMessage, LogEntry
from core.policy import FilterPolicy, SmartMode
from core.retry import RateLimitedError

ME = EntityInfo(id=1, first_name="Alice", username="alice_s")
BOB = EntityInfo(id=5, first_name="Bob")
NOW = datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)
DAY = 86_400


def _ts(days_ago: float) -> int:
    return int(NOW.timestamp() - days_ago * DAY)


def _message(chat_id: int, message_id: int, days_ago: float, text: str = "dinner at 7", **kwargs) -> IncomingMessage:
    return IncomingMessage(
        chat_id=chat_id,
        sender_id=kwargs.pop("sender_id", 5),
        message_id=message_id,
        text=text,
        send_time=_ts(days_ago),
        sender=kwargs.pop("sender", BOB),
        **kwargs,
    )


class FakeHistory:
    def __init__(self) -> None:
        self.dialogs = {
            False: [
                EntityInfo(id=5, first_name="Bob"),
                EntityInfo(id=20, title="Family", participant_count=6),
                EntityInfo(id=30, title="Crypto Pump Signals", is_broadcast=True, participant_count=1200),
            ],
            True: [EntityInfo(id=40, title="Old Book Club", participant_count=8)],
        }
        self.messages = {
            # Newest first, as Telegram returns history.
            5: [_message(5, 3, 1), _message(5, 2, 2, text="BUY NOW"), _message(5, 1, 9)],
            20: [_message(20, 7, 0.5), _message(20, 6, 3, is_forwarded=True)],
            30: [_message(30, 1, 1)],
            40: [_message(40, 1, 4)],
        }
        self.failing: set[int] = set()
        self.flaky: dict[int, int] = {}
        self.dialog_failures = 0
        self.dialog_calls = 0
        self.rate_limited: set[int] = set()
        self.requested: list[int] = []

    async def iter_dialogs(self, archived: bool = False):
        self.dialog_calls += 1
        for index, chat in enumerate(self.dialogs[archived]):
            if index == 1 and self.dialog_failures:
                self.dialog_failures -= 1
                raise ConnectionError("dropped while listing")
            yield chat

    async def iter_messages(self, chat: EntityInfo, limit: int):
        self.requested.append(chat.id)
        if chat.id in self.rate_limited:
            raise RateLimitedError("flood", wait_seconds=120)
        if chat.id in self.failing:
            raise ConnectionError("boom")
        for index, message in enumerate(self.messages[chat.id][:limit]):
            if index == 1 and self.flaky.get(chat.id):
                self.flaky[chat.id] -= 1
                raise ConnectionError("dropped mid-history")
            yield message


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _fetcher(history: FakeHistory, sleep: FakeSleep, **config) -> HistoryFetcher:
    return HistoryFetcher(
        history,
        FilterPolicy(SmartMode()),
        ME,
        config=DigestConfig(**config),
        clock=lambda: NOW,
        sleep=sleep,
    )


def test_fetch_window_applies_filters_and_cutoff() -> None:
    history = FakeHistory()
    sleep = FakeSleep()
    fetcher = _fetcher(history, sleep, fetch_delay_seconds=0.25)

    entries = asyncio.run(fetcher.fetch_window())

    assert [(entry.chat_id, entry.message_id) for entry in entries] == [("5", 3), ("20", 7)]
    assert history.requested == [5, 20]
    assert sleep.delays == [0.25]
    assert entries[0].timestamp == datetime.fromtimestamp(_ts(1), tz=timezone.utc).isoformat()
    assert fetcher.stats.dialogs_seen == 3
    assert fetcher.stats.messages_in_window == 4
    assert fetcher.stats.messages_included == 2


def test_archived_dialogs_are_prefixed() -> None:
    fetcher = _fetcher(FakeHistory(), FakeSleep(), include_archived=True)

    entries = asyncio.run(fetcher.fetch_window(days=7))

    assert entries[-1].chat_title == "[ARCHIVED] Old Book Club"


def test_failed_dialog_is_skipped() -> None:
    history = FakeHistory()
    history.failing.add(5)
    fetcher = _fetcher(history, FakeSleep())

    entries = asyncio.run(fetcher.fetch_window())

    assert [entry.chat_id for entry in entries] == ["20"]
    assert fetcher.stats.dialogs_failed == 1


def test_rate_limit_stops_the_fetch() -> None:
    history = FakeHistory()
    history.rate_limited.add(5)

    with pytest.raises(RateLimitedError):
        asyncio.run(_fetcher(history, FakeSleep()).fetch_window())
    assert history.requested == [5]


def test_transient_history_error_is_retried_without_duplicates() -> None:
    history = FakeHistory()
    history.flaky[5] = 1
    sleep = FakeSleep()
    fetcher = _fetcher(history, sleep)

    entries = asyncio.run(fetcher.fetch_window())

    assert [(entry.chat_id, entry.message_id) for entry in entries] == [("5", 3), ("20", 7)]
    assert history.requested == [5, 5, 20]
    assert sleep.delays == [1.0, 0.1]
    assert fetcher.stats.dialogs_failed == 0
    assert fetcher.stats.messages_in_window == 4


def test_transient_dialog_listing_error_is_retried() -> None:
    history = FakeHistory()
    history.dialog_failures = 1
    fetcher = _fetcher(history, FakeSleep())

    entries = asyncio.run(fetcher.fetch_window())

    assert [entry.chat_id for entry in entries] == ["5", "20"]
    assert history.dialog_calls == 2
    assert fetcher.stats.dialogs_seen == 3


def test_dialog_listing_gives_up_after_max_attempts() -> None:
    history = FakeHistory()
    history.dialog_failures = 5
    fetcher = HistoryFetcher(
        history,
        FilterPolicy(SmartMode()),
        ME,
        clock=lambda: NOW,
        sleep=FakeSleep(),
        retry=RetryConfig(max_attempts=3),
    )

    with pytest.raises(ConnectionError):
        asyncio.run(fetcher.fetch_window())
    assert history.dialog_calls == 3


class FakeStore:
    def __init__(self) -> None:
        self.days: dict[date, list[LogEntry]] = {}
        self.reads: list[date] = []
        self.writes: list[date] = []

    def append(self, entry: LogEntry, day: date) -> None:
        self.append_many([entry], day)

    def append_many(self, entries: list[LogEntry], day: date) -> None:
        self.writes.append(day)
        self.days.setdefault(day, []).extend(entries)

    def read_day(self, day: date) -> list[LogEntry]:
        self.reads.append(day)
        return list(self.days.get(day, []))


def test_persist_entries_is_idempotent() -> None:
    entries = asyncio.run(_fetcher(FakeHistory(), FakeSleep()).fetch_window())
    store = FakeStore()

    assert persist_entries(store, entries) == 2
    assert persist_entries(store, entries) == 0
    assert sorted(store.days) == [date(2024, 3, 7), date(2024, 3, 8)]


def test_persist_entries_writes_each_day_once() -> None:
    history = FakeHistory()
    history.messages[20] = [_message(20, message_id, 0.5) for message_id in range(10, 0, -1)]
    entries = asyncio.run(_fetcher(history, FakeSleep()).fetch_window())
    store = FakeStore()

    assert persist_entries(store, entries) == 11
    assert store.writes == [date(2024, 3, 7), date(2024, 3, 8)]
    assert store.reads == [date(2024, 3, 7), date(2024, 3, 8)]
    assert [entry.message_id for entry in store.days[date(2024, 3, 8)]] == list(range(10, 0, -1))
