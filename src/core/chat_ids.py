"""Helpers for matching configured chat ids against platform entity ids."""

from __future__ import annotations

from typing import Iterable, Optional

CHANNEL_PEER_PREFIX = "-100"
CHANNEL_PEER_OFFSET = 1000000000000


def expand_chat_id_variants(raw_chat_id: int) -> set[int]:
    """Return equivalent chat id variants (peer id, chat id, channel id)."""

    variants: set[int] = {raw_chat_id}
    if raw_chat_id < 0:
        raw_text = str(raw_chat_id)
        if raw_text.startswith(CHANNEL_PEER_PREFIX):
            # Channel/supergroup peer id: -100<channel_id>
            channel_part = raw_text[len(CHANNEL_PEER_PREFIX):]
            if channel_part.isdigit():
                variants.add(int(channel_part))
        else:
            variants.add(abs(raw_chat_id))
        return variants

    # raw_chat_id is positive: add PeerChat and PeerChannel-style ids.
    variants.add(-raw_chat_id)
    variants.add(-CHANNEL_PEER_OFFSET - raw_chat_id)
    return variants


def parse_chat_id(value: object) -> Optional[int]:
    """Parse a configured chat id, returning None for junk values."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return None


def normalize_chat_ids(values: Iterable[object]) -> frozenset[int]:
    """Expand configured ids so any peer form of a chat matches its entity id."""

    expanded: set[int] = set()
    for value in values:
        chat_id = parse_chat_id(value)
        if chat_id is None:
            continue
        expanded.update(expand_chat_id_variants(chat_id))
    return frozenset(expanded)
