"""Bulk historical fetch for digest generation.

Walks the account's dialogs, applies the same chat and message policy as the
live pipeline, and returns the entries inside the trailing window. Dialogs are
paced with a short delay to stay clear of upstream rate limits, and every
platform read goes through the retry helper.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from core.classifier import classify, display_title
from core.config import DigestConfig, RetryConfig
from core.models import EntityInfo, IncomingMessage, LogEntry
from core.policy import FilterPolicy, FolderIndex, check_mention, evaluate_chat, evaluate_message
from core.ports import HistoryPort, LogStorePort
from core.processor import build_log_entry, is_from_self, utc_now
from core.retry import RateLimitedError, retry_with_config

LOGGER = logging.getLogger(__name__)

ARCHIVED_TITLE_PREFIX = "[ARCHIVED] "

T = TypeVar("T")


@dataclass
class FetchStats:
    dialogs_seen: int = 0
    dialogs_included: int = 0
    dialogs_failed: int = 0
    messages_in_window: int = 0
    messages_included: int = 0


class HistoryFetcher:
    """Collect a window of history straight from the platform."""

    def __init__(
        self,
        history: HistoryPort,
        policy: FilterPolicy,
        me: EntityInfo,
        config: DigestConfig = DigestConfig(),
        folders: Optional[FolderIndex] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        debug: bool = False,
        retry: RetryConfig = RetryConfig(),
    ) -> None:
        self._history = history
        self._policy = policy
        self._me = me
        self._config = config
        self._folders = folders
        self._clock = clock
        self._sleep = sleep
        self._debug = debug
        self._retry = retry
        self.stats = FetchStats()

    async def _with_retry(self, op: Callable[[], Awaitable[T]], label: str) -> T:
        return await retry_with_config(op, self._retry, sleep=self._sleep, label=label)

    async def fetch_window(self, days: Optional[int] = None) -> list[LogEntry]:
        """Return accepted entries from the last ``days`` days.

        Raises RateLimitedError at once, and the last platform error when the
        dialog list itself cannot be read after all retries.
        """

        window_days = days if days is not None else self._config.days
        cutoff = self._clock() - timedelta(days=window_days)
        entries = await self._fetch_dialogs(cutoff, archived=False)
        if self._config.include_archived:
            entries.extend(await self._fetch_dialogs(cutoff, archived=True))
        LOGGER.info(
            "Fetched %s messages from %s/%s dialogs (%s failed)",
            self.stats.messages_included,
            self.stats.dialogs_included,
            self.stats.dialogs_seen,
            self.stats.dialogs_failed,
        )
        return entries

    async def _list_dialogs(self, archived: bool) -> list[EntityInfo]:
        # Collected up front so a failed listing restarts from the first dialog.
        async def _collect() -> list[EntityInfo]:
            return [chat async for chat in self._history.iter_dialogs(archived=archived)]

        return await self._with_retry(_collect, "list archived dialogs" if archived else "list dialogs")

    async def _fetch_dialogs(self, cutoff: datetime, archived: bool) -> list[LogEntry]:
        entries: list[LogEntry] = []
        first = True
        for chat in await self._list_dialogs(archived):
            self.stats.dialogs_seen += 1
            if not evaluate_chat(chat, self._policy, self._folders).included:
                continue
            self.stats.dialogs_included += 1

            if not first:
                await self._sleep(self._config.fetch_delay_seconds)
            first = False

            try:
                entries.extend(await self._fetch_chat(chat, cutoff, archived))
            except RateLimitedError:
                # A flood wait affects every following dialog too, so stop here.
                raise
            except Exception as exc:
                self.stats.dialogs_failed += 1
                LOGGER.warning("Failed to fetch from %s: %s", display_title(chat), exc)
        return entries

    async def _read_window(self, chat: EntityInfo, cutoff_epoch: float) -> list[IncomingMessage]:
        async def _collect() -> list[IncomingMessage]:
            window: list[IncomingMessage] = []
            async for message in self._history.iter_messages(chat, limit=self._config.fetch_limit_per_chat):
                # History arrives newest first, so the first old message ends the scan.
                if message.send_time < cutoff_epoch:
                    break
                window.append(message)
            return window

        return await self._with_retry(_collect, f"fetch {display_title(chat)}")

    async def _fetch_chat(self, chat: EntityInfo, cutoff: datetime, archived: bool) -> list[LogEntry]:
        chat_type = classify(chat)
        window = await self._read_window(chat, cutoff.timestamp())
        entries: list[LogEntry] = []

        for message in window:
            from_self = is_from_self(message, message.sender, self._me)
            mentioned = check_mention(message.text, self._me)
            decision = evaluate_message(
                message, chat_type, self._policy, is_from_self=from_self, is_mention=mentioned
            )
            if not decision.included:
                continue
            sent_at = datetime.fromtimestamp(message.send_time, tz=timezone.utc)
            entry = build_log_entry(
                message, chat, chat_type, message.sender, self._me, self._policy, sent_at
            )
            if archived:
                entry = replace(entry, chat_title=f"{ARCHIVED_TITLE_PREFIX}{entry.chat_title}")
            entries.append(entry)

        self.stats.messages_in_window += len(window)
        self.stats.messages_included += len(entries)
        if self._debug:
            LOGGER.info("%s: %s in range, %s included", display_title(chat), len(window), len(entries))
        return entries


def persist_entries(store: LogStorePort, entries: list[LogEntry]) -> int:
    """Write fetched entries to their send-date log files.

    Entries whose ``chat_id:message_id`` is already present in the target file
    are skipped, so repeated fetches do not duplicate history. Each day file
    is read once and written at most once.
    """

    by_day: dict[date, list[LogEntry]] = {}
    for entry in sorted(entries, key=lambda item: item.event_date):
        day = datetime.fromtimestamp(entry.event_date, tz=timezone.utc).date()
        by_day.setdefault(day, []).append(entry)

    written = 0
    for day, day_entries in sorted(by_day.items()):
        known = {existing.dedup_key for existing in store.read_day(day)}
        fresh: list[LogEntry] = []
        for entry in day_entries:
            if entry.dedup_key in known:
                continue
            known.add(entry.dedup_key)
            fresh.append(entry)
        if fresh:
            store.append_many(fresh, day)
            written += len(fresh)
    return written
