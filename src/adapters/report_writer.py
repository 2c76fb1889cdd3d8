"""Digest report file adapter.

Writes a Markdown report plus a companion JSON document per generation day.
"""

from __future__ import annotations

import json
import os
from datetime import date, datetime, timezone
from typing import Callable, Optional

REPORT_PREFIX = "weekly-digest-"


class FileReportWriter:
    """Report writer that satisfies the ReportWriterPort contract."""

    def __init__(
        self,
        reports_dir: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._reports_dir = reports_dir
        self._clock = clock

    def _base_path(self, day: date) -> str:
        return os.path.join(self._reports_dir, f"{REPORT_PREFIX}{day.isoformat()}")

    def write(
        self,
        body: str,
        *,
        total_messages: int,
        filter_mode: str,
        source: str,
        day: Optional[date] = None,
    ) -> str:
        """Write ``<prefix><day>.md`` and ``.json``; return the Markdown path."""

        generated_at = self._clock()
        report_day = day or generated_at.date()
        os.makedirs(self._reports_dir, exist_ok=True)
        base = self._base_path(report_day)

        markdown = "\n".join(
            [
                f"# Weekly Telegram Digest - {report_day.isoformat()}",
                "",
                body,
                "",
                "---",
                "**Report Details:**",
                f"- **Generated**: {generated_at.isoformat(timespec='seconds')}",
                f"- **Messages Analyzed**: {total_messages}",
                f"- **Filter Mode**: {filter_mode}",
                f"- **Source**: {source}",
                "",
            ]
        )
        with open(f"{base}.md", "w", encoding="utf-8") as handle:
            handle.write(markdown)

        metadata = {
            "timestamp": generated_at.isoformat(),
            "totalMessages": total_messages,
            "filterMode": filter_mode,
            "source": source,
            "digest": body,
        }
        with open(f"{base}.json", "w", encoding="utf-8") as handle:
            json.dump(metadata, handle, indent=2, ensure_ascii=False)

        return f"{base}.md"

    def list_reports(self, limit: int = 10) -> list[str]:
        """Return recent Markdown report paths, newest first."""

        if not os.path.isdir(self._reports_dir):
            return []
        names = sorted(
            (
                name
                for name in os.listdir(self._reports_dir)
                if name.startswith(REPORT_PREFIX) and name.endswith(".md")
            ),
            reverse=True,
        )
        return [os.path.join(self._reports_dir, name) for name in names[:limit]]
