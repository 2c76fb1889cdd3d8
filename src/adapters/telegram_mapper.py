"""Telegram-to-core mapping adapter.

This keeps Telethon-specific details (entity classes, flood waits, dialog
filters) out of the core pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from telethon import errors, utils
from telethon.tl.custom import Message
from telethon.tl.functions.messages import GetDialogFiltersRequest

from core.models import EntityInfo, IncomingMessage
from core.retry import RateLimitedError

LOGGER = logging.getLogger(__name__)

ARCHIVED_FOLDER_NAME = "archived"


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def entity_from_telethon(entity: Any) -> EntityInfo:
    """Map a Telethon User/Chat/Channel into the core EntityInfo."""

    username = getattr(entity, "username", None)
    return EntityInfo(
        id=int(getattr(entity, "id", 0) or 0),
        title=getattr(entity, "title", None) or None,
        first_name=getattr(entity, "first_name", None) or None,
        last_name=getattr(entity, "last_name", None) or None,
        username=username if isinstance(username, str) and username else None,
        is_broadcast=bool(getattr(entity, "broadcast", False)),
        is_megagroup=bool(getattr(entity, "megagroup", False) or getattr(entity, "gigagroup", False)),
        is_bot=bool(getattr(entity, "bot", False)),
        participant_count=_as_int(getattr(entity, "participants_count", None)),
    )


def message_from_telethon(message: Message, include_sender: bool = False) -> IncomingMessage:
    """Build a core IncomingMessage from a Telethon Message."""

    sender = None
    if include_sender and getattr(message, "sender", None) is not None:
        sender = entity_from_telethon(message.sender)
    date = getattr(message, "date", None)
    return IncomingMessage(
        chat_id=int(message.chat_id),
        sender_id=getattr(message, "sender_id", None),
        message_id=int(message.id),
        text=getattr(message, "raw_text", None) or "",
        send_time=int(date.timestamp()) if date else 0,
        is_forwarded=getattr(message, "fwd_from", None) is not None,
        is_outgoing=bool(getattr(message, "out", False)),
        sender=sender,
    )


def _rate_limited(exc: errors.FloodWaitError) -> RateLimitedError:
    return RateLimitedError(f"Telegram flood wait: {exc}", wait_seconds=getattr(exc, "seconds", None))


class TelethonPlatform:
    """PlatformPort and HistoryPort backed by a connected TelegramClient."""

    def __init__(self, client) -> None:
        self._client = client
        # Raw entities seen while listing dialogs, reused for history requests.
        self._dialog_entities: dict[int, Any] = {}

    async def _get_entity(self, ref: Any) -> EntityInfo:
        try:
            entity = await self._client.get_entity(ref)
        except errors.FloodWaitError as exc:
            raise _rate_limited(exc) from exc
        return entity_from_telethon(entity)

    async def get_chat(self, chat_id: int) -> EntityInfo:
        return await self._get_entity(chat_id)

    async def get_sender(self, sender_id: int) -> EntityInfo:
        return await self._get_entity(sender_id)

    async def get_self(self) -> EntityInfo:
        try:
            me = await self._client.get_me()
        except errors.FloodWaitError as exc:
            raise _rate_limited(exc) from exc
        if me is None:
            raise RuntimeError("Client is not authorized")
        return entity_from_telethon(me)

    async def iter_dialogs(self, archived: bool = False, limit: Optional[int] = None) -> AsyncIterator[EntityInfo]:
        try:
            async for dialog in self._client.iter_dialogs(limit=limit, archived=archived):
                info = entity_from_telethon(dialog.entity)
                self._dialog_entities[info.id] = dialog.entity
                yield info
        except errors.FloodWaitError as exc:
            raise _rate_limited(exc) from exc

    async def iter_messages(self, chat: EntityInfo, limit: int) -> AsyncIterator[IncomingMessage]:
        target = self._dialog_entities.get(chat.id, chat.id)
        try:
            async for message in self._client.iter_messages(target, limit=limit):
                yield message_from_telethon(message, include_sender=True)
        except errors.FloodWaitError as exc:
            raise _rate_limited(exc) from exc


def _filter_title(dialog_filter: Any) -> Optional[str]:
    title = getattr(dialog_filter, "title", None)
    # Newer layers wrap folder titles in TextWithEntities.
    title = getattr(title, "text", title)
    if isinstance(title, str) and title.strip():
        return title.strip().lower()
    return None


async def build_folder_index(client) -> Optional[dict[int, str]]:
    """Map entity ids to the lowercase name of the folder holding them.

    Returns None when folder definitions cannot be read, so callers can fall
    back to including every chat.
    """

    try:
        result = await client(GetDialogFiltersRequest())
    except Exception as exc:
        LOGGER.warning("Could not read folder definitions, folder filtering disabled: %s", exc)
        return None

    index: dict[int, str] = {}
    for dialog_filter in getattr(result, "filters", result) or []:
        name = _filter_title(dialog_filter)
        if not name:
            continue
        peers = list(getattr(dialog_filter, "pinned_peers", []) or [])
        peers.extend(getattr(dialog_filter, "include_peers", []) or [])
        for peer in peers:
            try:
                index.setdefault(utils.get_peer_id(peer, add_mark=False), name)
            except (TypeError, ValueError):
                continue

    try:
        async for dialog in client.iter_dialogs(archived=True):
            index.setdefault(int(dialog.entity.id), ARCHIVED_FOLDER_NAME)
    except Exception as exc:
        LOGGER.warning("Could not list archived dialogs for the folder index: %s", exc)

    LOGGER.info("Cached %s folder assignments", len(index))
    return index
