"""Daily JSON log storage adapter.

Implements the core LogStorePort with one pretty-printed JSON array per UTC
date: ``<log_dir>/<prefix>-YYYY-MM-DD.json``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import date
from typing import Any, Optional

from core.models import LogEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_PREFIX = "telegram-log"


class JsonDailyLogStore:
    """Thin file wrapper that satisfies the LogStorePort contract."""

    def __init__(self, log_dir: str, prefix: str = DEFAULT_PREFIX) -> None:
        self._log_dir = log_dir
        self._prefix = prefix

    @property
    def log_dir(self) -> str:
        return self._log_dir

    def path_for(self, day: date) -> str:
        return os.path.join(self._log_dir, f"{self._prefix}-{day.isoformat()}.json")

    def _read_raw(self, path: str) -> list[Any]:
        if not os.path.exists(path):
            return []
        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable log file %s: %s", path, exc)
            return []
        if not isinstance(data, list):
            LOGGER.warning("Ignoring log file %s: expected a JSON array", path)
            return []
        return data

    def append(self, entry: LogEntry, day: date) -> None:
        """Append one entry by rewriting the whole day file."""

        self.append_many([entry], day)

    def append_many(self, entries: list[LogEntry], day: date) -> None:
        """Append entries in order with a single rewrite of the day file.

        The new content is written to a temporary file and moved into place,
        so readers never observe a partially written array.
        """

        if not entries:
            return
        os.makedirs(self._log_dir, exist_ok=True)
        path = self.path_for(day)
        records = self._read_raw(path)
        records.extend(entry.to_dict() for entry in entries)

        fd, tmp_path = tempfile.mkstemp(dir=self._log_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def read_day(self, day: date) -> list[LogEntry]:
        """Return the entries logged on ``day``; missing or malformed files are empty."""

        entries: list[LogEntry] = []
        path = self.path_for(day)
        for record in self._read_raw(path):
            try:
                entries.append(LogEntry.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed record in %s: %s", path, exc)
        return entries

    def list_days(self, limit: Optional[int] = None) -> list[tuple[date, str]]:
        """Return (day, path) for existing log files, newest first."""

        if not os.path.isdir(self._log_dir):
            return []
        marker = f"{self._prefix}-"
        found: list[tuple[date, str]] = []
        for name in os.listdir(self._log_dir):
            if not name.startswith(marker) or not name.endswith(".json"):
                continue
            try:
                day = date.fromisoformat(name[len(marker):-len(".json")])
            except ValueError:
                continue
            found.append((day, os.path.join(self._log_dir, name)))
        found.sort(reverse=True)
        return found[:limit] if limit is not None else found
