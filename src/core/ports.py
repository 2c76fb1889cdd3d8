"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the messaging platform, the log store
and the summarizer so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import date
from typing import AsyncIterator, Optional, Protocol

from core.models import EntityInfo, IncomingMessage, LogEntry


class PlatformPort(Protocol):
    """On-demand entity lookups offered by the messaging platform."""

    async def get_chat(self, chat_id: int) -> EntityInfo:
        ...

    async def get_sender(self, sender_id: int) -> EntityInfo:
        ...

    async def get_self(self) -> EntityInfo:
        ...


class HistoryPort(Protocol):
    """Dialog and history access used by the bulk historical fetch."""

    def iter_dialogs(self, archived: bool = False) -> AsyncIterator[EntityInfo]:
        ...

    def iter_messages(self, chat: EntityInfo, limit: int) -> AsyncIterator[IncomingMessage]:
        ...


class LogStorePort(Protocol):
    """Date-partitioned, append-only log of accepted entries."""

    def append(self, entry: LogEntry, day: date) -> None:
        ...

    def append_many(self, entries: list[LogEntry], day: date) -> None:
        ...

    def read_day(self, day: date) -> list[LogEntry]:
        ...


class SummarizerPort(Protocol):
    """Language-model summarization of a prepared digest prompt."""

    async def summarize(self, prompt: str) -> str:
        ...


class ReportWriterPort(Protocol):
    """Persists generated digest reports."""

    def write(
        self,
        body: str,
        *,
        total_messages: int,
        filter_mode: str,
        source: str,
        day: Optional[date] = None,
    ) -> str:
        ...
