"""Digest aggregation over the trailing window of daily logs (core domain).

The aggregator buckets log entries, computes statistics, and either asks the
summarizer for prose or renders a deterministic Markdown report locally.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from core.config import DEFAULT_WINDOW_DAYS
from core.models import ChatType, LogEntry
from core.policy import AllowlistMode, FilterPolicy
from core.ports import LogStorePort, ReportWriterPort, SummarizerPort

LOGGER = logging.getLogger(__name__)

TOP_CHATS_LIMIT = 10

SOURCE_SUMMARIZER = "summarizer"
SOURCE_FALLBACK = "fallback"
SOURCE_EMPTY = "empty"

SYSTEM_PROMPT = (
    "You are an executive assistant creating weekly communication reports. "
    "Focus on actionable insights and clear priorities. Be concise and professional."
)


@dataclass(frozen=True)
class DigestStats:
    total_chats: int
    active_senders: int
    oldest: Optional[datetime]
    newest: Optional[datetime]


@dataclass(frozen=True)
class DigestPayload:
    """Bucketed view of a window of log entries."""

    entries: tuple[LogEntry, ...]
    direct_messages: tuple[LogEntry, ...]
    group_messages: tuple[LogEntry, ...]
    channel_messages: tuple[LogEntry, ...]
    mentions: tuple[LogEntry, ...]
    self_messages: tuple[LogEntry, ...]
    stats: DigestStats
    top_chats: tuple[tuple[str, int], ...]

    @property
    def total(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class PromptCaps:
    """Per-bucket limits that bound the size of the summarizer prompt."""

    direct: int = 15
    group: int = 20
    channel: int = 15
    mentions: int = 30
    self_messages: int = 10
    text_chars: int = 100
    mention_text_chars: int = 150


@dataclass(frozen=True)
class DigestReport:
    body: str
    source: str


def collect_window(
    store: LogStorePort, days: int = DEFAULT_WINDOW_DAYS, today: Optional[date] = None
) -> list[LogEntry]:
    """Read the last ``days`` daily logs, newest day first.

    Missing or unreadable files contribute nothing.
    """

    current = today or datetime.now(timezone.utc).date()
    entries: list[LogEntry] = []
    for offset in range(days):
        entries.extend(store.read_day(current - timedelta(days=offset)))
    return entries


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _top_chats(entries: Iterable[LogEntry]) -> tuple[tuple[str, int], ...]:
    counts: dict[str, int] = {}
    titles: dict[str, str] = {}
    for entry in entries:
        counts[entry.chat_id] = counts.get(entry.chat_id, 0) + 1
        titles.setdefault(entry.chat_id, entry.chat_title or entry.chat_id)
    # sorted() is stable, so equal counts keep first-encountered order.
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return tuple((titles[chat_id], count) for chat_id, count in ranked[:TOP_CHATS_LIMIT])


def aggregate(entries: Sequence[LogEntry]) -> DigestPayload:
    """Partition entries into digest buckets and compute statistics."""

    timestamps = [ts for ts in (_parse_timestamp(entry.timestamp) for entry in entries) if ts]
    stats = DigestStats(
        total_chats=len({entry.chat_id for entry in entries}),
        active_senders=len({entry.sender_id for entry in entries if not entry.is_from_self}),
        oldest=min(timestamps) if timestamps else None,
        newest=max(timestamps) if timestamps else None,
    )
    return DigestPayload(
        entries=tuple(entries),
        direct_messages=tuple(
            entry for entry in entries if entry.chat_type is ChatType.DM and not entry.is_from_self
        ),
        group_messages=tuple(entry for entry in entries if entry.chat_type is ChatType.GROUP),
        channel_messages=tuple(entry for entry in entries if entry.chat_type is ChatType.CHANNEL),
        mentions=tuple(entry for entry in entries if entry.is_mention),
        self_messages=tuple(entry for entry in entries if entry.is_from_self),
        stats=stats,
        top_chats=_top_chats(entries),
    )


def _day(entry: LogEntry) -> str:
    parsed = _parse_timestamp(entry.timestamp)
    return parsed.date().isoformat() if parsed else "unknown date"


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


def _format_day(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else "n/a"


def build_prompt(payload: DigestPayload, caps: PromptCaps = PromptCaps()) -> str:
    """Build the user prompt for the summarizer, capped per bucket."""

    def lines(entries: Sequence[LogEntry], limit: int, chars: int, with_chat: bool, with_sender: bool) -> str:
        rendered = []
        for entry in entries[:limit]:
            prefix = f"[{entry.chat_title}] " if with_chat else ""
            sender = f"{entry.sender_name}: " if with_sender else ""
            rendered.append(f'- {prefix}{sender}"{_clip(entry.text, chars)}" ({_day(entry)})')
        return "\n".join(rendered) or "- none"

    stats = payload.stats
    top = "\n".join(f"- {title}: {count} messages" for title, count in payload.top_chats) or "- none"
    sections = [
        "Analyze this week's Telegram activity and create a professional weekly digest:",
        "",
        f"DIRECT MESSAGES RECEIVED ({len(payload.direct_messages)} messages):",
        lines(payload.direct_messages, caps.direct, caps.text_chars, False, True),
        "",
        f"GROUP ACTIVITY ({len(payload.group_messages)} messages):",
        lines(payload.group_messages, caps.group, caps.text_chars, True, True),
        "",
        f"CHANNEL UPDATES ({len(payload.channel_messages)} messages):",
        lines(payload.channel_messages, caps.channel, caps.text_chars, True, False),
        "",
        f"MENTIONS & TAGS ({len(payload.mentions)} mentions):",
        lines(payload.mentions, caps.mentions, caps.mention_text_chars, True, True),
        "",
        f"MY ACTIVITY ({len(payload.self_messages)} messages sent):",
        lines(payload.self_messages, caps.self_messages, caps.text_chars, True, False),
        "",
        "ACTIVITY STATISTICS:",
        f"- Total Active Chats: {stats.total_chats}",
        f"- Unique Senders: {stats.active_senders}",
        f"- Date Range: {_format_day(stats.oldest)} to {_format_day(stats.newest)}",
        "",
        "TOP ACTIVE CHATS:",
        top,
        "",
        "Create a structured weekly report with:",
        "1. **EXECUTIVE SUMMARY**: Key highlights and patterns from this week",
        "2. **ACTION ITEMS**: Messages requiring responses or follow-up",
        "3. **IMPORTANT CONVERSATIONS**: High-priority discussions to review",
        "4. **TRENDING TOPICS**: Common themes across chats",
        "5. **COMMUNICATION STATS**: Activity breakdown and engagement patterns",
        "6. **PRIORITY CONTACTS**: People who need attention or follow-up",
        "",
        "Be concise, actionable, and professional. Focus on what requires attention or action.",
    ]
    return "\n".join(sections)


def render_fallback_report(
    payload: DigestPayload, policy: FilterPolicy, days: int = DEFAULT_WINDOW_DAYS
) -> str:
    """Deterministic Markdown report used when the summarizer is unavailable."""

    stats = payload.stats
    incoming = len(payload.direct_messages) + len(payload.group_messages) + len(payload.channel_messages)
    average = round(incoming / days) if days > 0 else incoming
    top = [f"- {title}: {count} messages" for title, count in payload.top_chats] or ["- none"]

    lines = [
        "# Weekly Telegram Activity Report",
        "",
        "## Executive Summary",
        f"- **Total Messages Analyzed**: {payload.total}",
        f"- **Direct Messages Received**: {len(payload.direct_messages)}",
        f"- **Group Messages**: {len(payload.group_messages)}",
        f"- **Channel Updates**: {len(payload.channel_messages)}",
        f"- **Mentions**: {len(payload.mentions)}",
        f"- **My Messages Sent**: {len(payload.self_messages)}",
        "",
        "## Activity Breakdown",
        f"- **Active Chats**: {stats.total_chats}",
        f"- **Unique Contacts**: {stats.active_senders}",
        "",
        "## Top Active Chats",
        *top,
        "",
        "## Action Items",
        "- Review and respond to direct messages"
        if payload.direct_messages
        else "- No direct messages to respond to",
        "- Follow up on mentions and tags" if payload.mentions else "- No mentions requiring attention",
        "",
        "## Key Statistics",
        f"- **Period**: {_format_day(stats.oldest)} - {_format_day(stats.newest)}",
        f"- **Average Daily Messages**: {average}",
        f"- **Filter Mode**: {policy.mode_name}",
        "",
        "*Note: This is a basic report generated because the AI summarization service was unavailable.*",
    ]
    return "\n".join(lines)


def render_empty_report(policy: FilterPolicy) -> str:
    """Canned report for a window without any logged messages."""

    mode = policy.mode
    block_channels = getattr(mode, "block_all_channels", False)
    if isinstance(mode, AllowlistMode) and mode.chat_ids:
        allowed = f"{len(mode.chat_ids)} ids (including equivalent forms)"
    else:
        allowed = "none specified"
    lines = [
        "# Weekly Telegram Activity Report",
        "",
        "## Executive Summary",
        "No messages found for the specified time period and filter settings.",
        "",
        "## Recommendations",
        f"- Check your filter settings (current: {policy.mode_name})",
        "- Verify the date range is correct",
        "- Consider expanding filter criteria if too restrictive",
        "- Check if messages exist in archived chats",
        "",
        "## Filter Configuration",
        f"- **Mode**: {policy.mode_name}",
        f"- **Block Channels**: {'true' if block_channels else 'false'}",
        f"- **Allowed Chats**: {allowed}",
        "",
        "*Run the list-chats command to see which chats are included or excluded.*",
    ]
    return "\n".join(lines)


async def build_report(
    payload: DigestPayload,
    summarizer: Optional[SummarizerPort],
    policy: FilterPolicy,
    days: int = DEFAULT_WINDOW_DAYS,
    caps: PromptCaps = PromptCaps(),
) -> DigestReport:
    """Produce the digest body, falling back to a local report on any failure."""

    if payload.total == 0:
        return DigestReport(body=render_empty_report(policy), source=SOURCE_EMPTY)

    if summarizer is None:
        LOGGER.warning("No summarizer configured; rendering the fallback report")
        return DigestReport(body=render_fallback_report(payload, policy, days), source=SOURCE_FALLBACK)

    try:
        body = await summarizer.summarize(build_prompt(payload, caps))
    except Exception as exc:
        LOGGER.warning("Summarizer failed, rendering the fallback report: %s", exc)
        return DigestReport(body=render_fallback_report(payload, policy, days), source=SOURCE_FALLBACK)

    if not body or not body.strip():
        LOGGER.warning("Summarizer returned an empty body; rendering the fallback report")
        return DigestReport(body=render_fallback_report(payload, policy, days), source=SOURCE_FALLBACK)
    return DigestReport(body=body.strip(), source=SOURCE_SUMMARIZER)


async def summarize_entries(
    entries: Sequence[LogEntry],
    summarizer: Optional[SummarizerPort],
    writer: ReportWriterPort,
    policy: FilterPolicy,
    days: int = DEFAULT_WINDOW_DAYS,
) -> tuple[DigestReport, str]:
    """Aggregate entries, build the report and persist it."""

    LOGGER.info("Generating digest for %s messages", len(entries))
    report = await build_report(aggregate(entries), summarizer, policy, days)
    path = writer.write(
        report.body,
        total_messages=len(entries),
        filter_mode=policy.mode_name,
        source=report.source,
    )
    LOGGER.info("Digest saved to %s (%s)", path, report.source)
    return report, path


async def generate_digest(
    store: LogStorePort,
    summarizer: Optional[SummarizerPort],
    writer: ReportWriterPort,
    policy: FilterPolicy,
    days: int = DEFAULT_WINDOW_DAYS,
    today: Optional[date] = None,
) -> tuple[DigestReport, str]:
    """Read the log window and write a digest report for it."""

    entries = collect_window(store, days, today)
    return await summarize_entries(entries, summarizer, writer, policy, days)
