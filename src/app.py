"""Application entry point for teledigest."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.deepseek_summarizer import DeepSeekSummarizer, build_summarizer
from adapters.json_log_store import JsonDailyLogStore
from adapters.report_writer import FileReportWriter
from adapters.telegram_mapper import TelethonPlatform, build_folder_index, message_from_telethon
from client import build_client, connect
from core.classifier import classify, display_title
from core.config import CacheConfig, DigestConfig, RetryConfig
from core.dedup import DedupCache
from core.digest import generate_digest, summarize_entries
from core.history import HistoryFetcher, persist_entries
from core.lookup import EntityResolver
from core.policy import ExcludeFoldersMode, FilterPolicy, FolderIndex, build_policy, evaluate_chat
from core.processor import IngestionPipeline
from core.retry import RateLimitedError, retry_with_config

NAME = "TELEDIGEST"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/teledigest.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _policy() -> FilterPolicy:
    return build_policy(settings.FILTER, debug=settings.DEBUG_FILTERING)


def _retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        initial_delay=settings.RETRY_INITIAL_DELAY,
        backoff_factor=settings.RETRY_BACKOFF_FACTOR,
    )


def _cache_config() -> CacheConfig:
    return CacheConfig(
        dedup_high_water_mark=settings.DEDUP_HIGH_WATER_MARK,
        lookup_ttl_seconds=settings.LOOKUP_TTL_SECONDS,
    )


def _digest_config(days: Optional[int], include_archived: Optional[bool] = None) -> DigestConfig:
    return DigestConfig(
        days=days if days is not None else settings.DIGEST_DAYS,
        include_archived=settings.INCLUDE_ARCHIVED if include_archived is None else include_archived,
        fetch_delay_seconds=settings.FETCH_DELAY_SECONDS,
        fetch_limit_per_chat=settings.FETCH_LIMIT_PER_CHAT,
    )


def _store() -> JsonDailyLogStore:
    return JsonDailyLogStore(settings.LOG_DIR, settings.LOG_PREFIX)


def _summarizer() -> Optional[DeepSeekSummarizer]:
    load_dotenv()
    summarizer = build_summarizer(
        os.getenv("DEEPSEEK_API_KEY"),
        os.getenv("DEEPSEEK_API_URL"),
        model=settings.DIGEST_MODEL,
        timeout_seconds=settings.DIGEST_TIMEOUT_SECONDS,
    )
    if summarizer is None:
        LOGGER.warning("DEEPSEEK_API_KEY is not set; digests will use the local fallback report")
    return summarizer


async def _folders_for(client, policy: FilterPolicy) -> Optional[FolderIndex]:
    # Only exclude_folders mode reads folder data.
    if not isinstance(policy.mode, ExcludeFoldersMode) or not policy.mode.folders:
        return None
    folders = await build_folder_index(client)
    if folders is None:
        LOGGER.warning("Folder data unavailable; exclude_folders mode will include every chat")
    return folders


def _log_policy(policy: FilterPolicy) -> None:
    mode = policy.mode
    LOGGER.info("Filter mode: %s", policy.mode_name)
    for field_name in ("keywords", "folders", "chat_ids"):
        values = getattr(mode, field_name, None)
        if values:
            LOGGER.info("%s: %s", field_name, ", ".join(sorted(str(value) for value in values)))
    if getattr(mode, "block_all_channels", False):
        LOGGER.info("Blocking ALL channels")


async def _listen(client, pipeline: IngestionPipeline) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(client.disconnect()))
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops.
            pass
    try:
        await client.run_until_disconnected()
    finally:
        pipeline.stop()
        await pipeline.wait_idle()
        LOGGER.info(
            "Stopped. Today: logged=%s filtered=%s skipped=%s",
            pipeline.counters.accepted,
            pipeline.counters.filtered,
            pipeline.counters.skipped,
        )


def _run() -> None:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting teledigest")

    policy = _policy()
    _log_policy(policy)
    store = _store()

    client = build_client()
    client.loop.run_until_complete(connect(client))

    folders = client.loop.run_until_complete(_folders_for(client, policy))
    cache_config = _cache_config()
    resolver = EntityResolver.from_config(TelethonPlatform(client), _retry_config(), cache_config)
    pipeline = IngestionPipeline(
        resolver=resolver,
        store=store,
        policy=policy,
        dedup=DedupCache.from_config(cache_config),
        folders=folders,
    )

    # All filtering happens in the pipeline; the handler only maps the event.
    @client.on(events.NewMessage())
    async def handler(event) -> None:
        try:
            await pipeline.handle(message_from_telethon(event.message))
        except Exception:
            LOGGER.exception("Error while processing message")

    LOGGER.info("Logging to %s", store.path_for(pipeline.current_day))
    LOGGER.info("Listening for messages. Press Ctrl+C to stop.")
    client.loop.run_until_complete(_listen(client, pipeline))


def _digest(days: Optional[int]) -> None:
    _configure_logging()
    config = _digest_config(days)
    report, path = asyncio.run(
        generate_digest(_store(), _summarizer(), FileReportWriter(settings.REPORTS_DIR), _policy(), config.days)
    )
    _print_report(report.body, path)


def _fetch(days: Optional[int], archived: bool, persist: bool) -> None:
    _configure_logging()
    policy = _policy()
    config = _digest_config(days, include_archived=archived or None)
    client = build_client()

    async def _run_fetch() -> None:
        await connect(client)
        try:
            platform = TelethonPlatform(client)
            retry = _retry_config()
            me = await retry_with_config(platform.get_self, retry, label="lookup self")
            fetcher = HistoryFetcher(
                platform,
                policy,
                me,
                config=config,
                folders=await _folders_for(client, policy),
                debug=settings.DEBUG_FETCHING,
                retry=retry,
            )
            entries = await fetcher.fetch_window()
            if persist:
                written = persist_entries(_store(), entries)
                LOGGER.info("Persisted %s new entries to %s", written, settings.LOG_DIR)
            report, path = await summarize_entries(
                entries, _summarizer(), FileReportWriter(settings.REPORTS_DIR), policy, config.days
            )
            _print_report(report.body, path)
        finally:
            await client.disconnect()

    client.loop.run_until_complete(_run_fetch())


def _print_report(body: str, path: str) -> None:
    print(f"Report saved: {path}")
    print("=" * 60)
    print(body)
    print("=" * 60)


def _logs() -> None:
    store = _store()
    days = store.list_days(limit=7)
    if not days:
        print("No logs found yet.")
        return
    print("Recent log files:")
    for day, path in days:
        print(f"  {os.path.basename(path)}: {len(store.read_day(day))} messages")


def _reports() -> None:
    paths = FileReportWriter(settings.REPORTS_DIR).list_reports()
    if not paths:
        print("No previous reports found.")
        return
    print("Recent reports:")
    for path in paths:
        print(f"  {os.path.basename(path)}")


async def _list_chats(client, policy: FilterPolicy, limit: int) -> None:
    # The preview always shows folders so users can pick names for the config.
    folders = await build_folder_index(client) or {}
    platform = TelethonPlatform(client)

    included: list[str] = []
    excluded: list[str] = []
    async for chat in platform.iter_dialogs(limit=limit):
        decision = evaluate_chat(chat, policy, folders)
        members = chat.participant_count if chat.participant_count is not None else "N/A"
        line = (
            f"{display_title(chat)} | {classify(chat).value} | members: {members} | "
            f"id: {chat.id} | folder: {folders.get(chat.id, '-')} | {decision.reason}"
        )
        (included if decision.included else excluded).append(line)

    print("=" * 80)
    print(f"CHAT FILTERING PREVIEW (mode: {policy.mode_name})")
    print("=" * 80)
    if included:
        print("\nINCLUDED CHATS:")
        for index, line in enumerate(included, start=1):
            print(f"{index}. {line}")
    if excluded:
        print("\nEXCLUDED CHATS (showing first 20):")
        for index, line in enumerate(excluded[:20], start=1):
            print(f"{index}. {line}")
        if len(excluded) > 20:
            print(f"   ... and {len(excluded) - 20} more excluded chats")
    print(f"\nSUMMARY: {len(included)} included, {len(excluded)} excluded")


def _discover(limit: int) -> None:
    _print_banner()
    client = build_client()

    async def _run_discover() -> None:
        await connect(client)
        try:
            await _list_chats(client, _policy(), limit)
        finally:
            await client.disconnect()

    client.loop.run_until_complete(_run_discover())


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be 1 or greater")
    return number


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="teledigest")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start continuous message logging (default)")

    digest_parser = subparsers.add_parser("digest", help="Generate a digest from the daily logs")
    digest_parser.add_argument("--days", type=_positive_int, default=None, help="Trailing window in days")

    fetch_parser = subparsers.add_parser("fetch", help="Generate a digest from Telegram history")
    fetch_parser.add_argument("--days", type=_positive_int, default=None, help="Trailing window in days")
    fetch_parser.add_argument("--archived", action="store_true", help="Also scan archived chats")
    fetch_parser.add_argument("--persist", action="store_true", help="Write fetched messages to the daily logs")

    subparsers.add_parser("logs", help="Show recent log files")

    chats_parser = subparsers.add_parser("list-chats", help="Show chats and their filtering status")
    chats_parser.add_argument("--limit", type=_positive_int, default=100)

    subparsers.add_parser("reports", help="List recent digest reports")

    args = parser.parse_args(argv)
    try:
        if args.command == "digest":
            _digest(args.days)
        elif args.command == "fetch":
            _fetch(args.days, args.archived, args.persist)
        elif args.command == "logs":
            _logs()
        elif args.command == "list-chats":
            _discover(args.limit)
        elif args.command == "reports":
            _reports()
        else:
            _run()
    except RateLimitedError as exc:
        wait = f"{exc.wait_seconds} seconds" if exc.wait_seconds else "30+ minutes"
        print(f"Rate limited by Telegram. Wait {wait} before trying again.")
        raise SystemExit(1) from exc
    except RuntimeError as exc:
        LOGGER.error("%s", exc)
        print(f"Error: {exc}")
        raise SystemExit(1) from exc
    except OSError as exc:
        # Network and file errors that survived the retries.
        LOGGER.error("%s", exc)
        print(f"Error: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
