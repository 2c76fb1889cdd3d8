"""Core ingestion pipeline.

This module is integration-agnostic. It only relies on ports for entity
lookups and log persistence, enabling other frontends or adapters without
changes here.

Per-event order:
1) Dedup check on ``chat_id:message_id``
2) Chat, sender and self lookups (cached, retried)
3) Chat-level policy
4) Mode-specific group mention gating
5) Message-level policy
6) Append to the current day's log, then count
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from core.classifier import classify, display_title
from core.dedup import DedupCache
from core.lookup import EntityResolver
from core.models import SELF_SENDER_NAME, ChatType, EntityInfo, IncomingMessage, LogEntry
from core.policy import (
    FilterPolicy,
    FolderIndex,
    check_mention,
    evaluate_chat,
    evaluate_message,
    requires_mention,
)
from core.ports import LogStorePort
from core.retry import RateLimitedError

LOGGER = logging.getLogger(__name__)

HOURLY_REPORT_INTERVAL = timedelta(hours=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Outcome(str, Enum):
    ACCEPTED = "accepted"
    FILTERED = "filtered"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class DailyCounters:
    """Independent counters, monotonic within a day."""

    accepted: int = 0
    filtered: int = 0
    skipped: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.ACCEPTED:
            self.accepted += 1
        elif outcome is Outcome.FILTERED:
            self.filtered += 1
        elif outcome is Outcome.SKIPPED:
            self.skipped += 1

    def reset(self) -> None:
        self.accepted = 0
        self.filtered = 0
        self.skipped = 0


def is_from_self(message: IncomingMessage, sender: Optional[EntityInfo], me: Optional[EntityInfo]) -> bool:
    if message.is_outgoing:
        return True
    if sender is None or me is None:
        return False
    return sender.id == me.id and not sender.is_broadcast


def build_log_entry(
    message: IncomingMessage,
    chat: EntityInfo,
    chat_type: ChatType,
    sender: Optional[EntityInfo],
    me: Optional[EntityInfo],
    policy: FilterPolicy,
    timestamp: datetime,
) -> LogEntry:
    """Build the persisted entry for a message that passed every filter."""

    from_self = is_from_self(message, sender, me)
    if sender is not None:
        sender_id = str(sender.id)
        fallback_name = f"User_{sender.id}"
    else:
        sender_id = str(message.sender_id) if message.sender_id is not None else "unknown"
        fallback_name = f"User_{sender_id}"
    if from_self:
        sender_name = SELF_SENDER_NAME
    else:
        sender_name = display_title(sender, default=fallback_name) if sender else fallback_name

    return LogEntry(
        timestamp=timestamp.isoformat(),
        message_id=message.message_id,
        chat_id=str(chat.id),
        chat_title=display_title(chat, default=sender_name),
        chat_type=chat_type,
        sender_name=sender_name,
        sender_id=sender_id,
        text=message.text,
        event_date=message.send_time,
        is_from_self=from_self,
        is_mention=check_mention(message.text, me),
        filter_mode_used=policy.mode_name,
    )


class IngestionPipeline:
    """Classify, filter, dedup and persist live events one at a time."""

    def __init__(
        self,
        resolver: EntityResolver,
        store: LogStorePort,
        policy: FilterPolicy,
        dedup: Optional[DedupCache] = None,
        folders: Optional[FolderIndex] = None,
        clock: Callable[[], datetime] = utc_now,
        report_interval: timedelta = HOURLY_REPORT_INTERVAL,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._policy = policy
        self._dedup = dedup if dedup is not None else DedupCache()
        self._folders = folders
        self._clock = clock
        self._report_interval = report_interval
        self._lock = asyncio.Lock()
        self._stopping = False

        started = clock()
        self._current_day: date = started.date()
        self._last_report = started
        self.counters = DailyCounters()
        self.hourly = DailyCounters()

    @property
    def current_day(self) -> date:
        return self._current_day

    @property
    def dedup(self) -> DedupCache:
        return self._dedup

    def stop(self) -> None:
        """Stop accepting events; an in-flight event still completes."""

        self._stopping = True

    async def wait_idle(self) -> None:
        """Return once no event is being processed."""

        async with self._lock:
            return

    async def handle(self, message: IncomingMessage) -> Outcome:
        """Process one event. Never raises for per-event failures."""

        # The lock serializes handler invocations so log appends keep arrival
        # order and the caches are only touched by one event at a time.
        async with self._lock:
            if self._stopping:
                return Outcome.IGNORED
            now = self._clock()
            self._rotate_if_needed(now)
            outcome = await self._process(message, now)
            if outcome is Outcome.ACCEPTED or outcome is Outcome.FILTERED:
                self._dedup.add(message.dedup_key)
            self.counters.record(outcome)
            self.hourly.record(outcome)
            self._maybe_report(now)
            return outcome

    async def _process(self, message: IncomingMessage, now: datetime) -> Outcome:
        if message.dedup_key in self._dedup:
            return Outcome.DUPLICATE

        # Media-only messages without captions never reach the log, so skip the
        # lookups for them entirely.
        if not (message.text or "").strip():
            return Outcome.FILTERED

        try:
            chat = await self._resolver.chat(message.chat_id)
            chat_type = classify(chat)
            sender = await self._resolver.sender(
                message.sender_id, chat, is_channel=chat_type is ChatType.CHANNEL
            )
            me = await self._resolver.me()
        except RateLimitedError as exc:
            wait = f"{exc.wait_seconds}s" if exc.wait_seconds else "a while"
            LOGGER.warning(
                "Rate limited while resolving chat %s; wait %s before retrying (%s)",
                message.chat_id,
                wait,
                exc,
            )
            return Outcome.SKIPPED
        except Exception as exc:
            LOGGER.warning("Lookup failed for chat %s, skipping message: %s", message.chat_id, exc)
            return Outcome.SKIPPED

        if not evaluate_chat(chat, self._policy, self._folders).included:
            return Outcome.FILTERED

        from_self = is_from_self(message, sender, me)
        mentioned = check_mention(message.text, me)
        if requires_mention(chat, chat_type, self._policy) and not mentioned:
            return Outcome.FILTERED

        decision = evaluate_message(
            message, chat_type, self._policy, is_from_self=from_self, is_mention=mentioned
        )
        if not decision.included:
            if self._policy.debug:
                LOGGER.info("Message %s filtered: %s", message.dedup_key, decision.reason)
            return Outcome.FILTERED

        entry = build_log_entry(message, chat, chat_type, sender, me, self._policy, now)
        try:
            self._store.append(entry, self._current_day)
        except OSError:
            LOGGER.exception("Failed to append message %s to the log", message.dedup_key)
            return Outcome.SKIPPED

        label = f"[{entry.chat_title}]" if chat_type is ChatType.GROUP else entry.chat_title
        LOGGER.info("Logged %s %s: %s", label, entry.sender_name, entry.text[:60])
        return Outcome.ACCEPTED

    def _rotate_if_needed(self, now: datetime) -> None:
        today = now.date()
        if today == self._current_day:
            return
        LOGGER.info(
            "New day %s: closing %s (accepted=%s, filtered=%s, skipped=%s)",
            today.isoformat(),
            self._current_day.isoformat(),
            self.counters.accepted,
            self.counters.filtered,
            self.counters.skipped,
        )
        self._current_day = today
        self.counters.reset()

    def _maybe_report(self, now: datetime) -> None:
        if now - self._last_report < self._report_interval:
            return
        LOGGER.info(
            "Hourly summary: logged=%s filtered=%s skipped=%s | today: logged=%s filtered=%s skipped=%s",
            self.hourly.accepted,
            self.hourly.filtered,
            self.hourly.skipped,
            self.counters.accepted,
            self.counters.filtered,
            self.counters.skipped,
        )
        self.hourly.reset()
        self._last_report = now
