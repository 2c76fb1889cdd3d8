"""Entity classification (core domain).

Every chat gets exactly one ChatType, computed here once. Downstream code
matches on the tag and never re-inspects the raw platform flags.
"""

from __future__ import annotations

from typing import Any

from core.models import ChatType


def _flag(entity: Any, name: str) -> bool:
    return bool(getattr(entity, name, False))


def _participant_count(entity: Any) -> Any:
    count = getattr(entity, "participant_count", None)
    return count if isinstance(count, int) and not isinstance(count, bool) else None


def classify(entity: Any) -> ChatType:
    """Return the chat type for any entity-like object.

    Precedence (first match wins):
    - broadcast and not a megagroup -> channel
    - megagroup, or a non-channel entity exposing a participant count -> group
    - bot -> bot
    - anything else -> dm

    Missing attributes are treated as unset, so this never raises.
    """

    is_broadcast = _flag(entity, "is_broadcast")
    is_megagroup = _flag(entity, "is_megagroup")

    if is_broadcast and not is_megagroup:
        return ChatType.CHANNEL
    if is_megagroup or (not is_broadcast and _participant_count(entity) is not None):
        return ChatType.GROUP
    if _flag(entity, "is_bot"):
        return ChatType.BOT
    return ChatType.DM


def display_title(entity: Any, default: str = "Unknown") -> str:
    """Return a display title, deriving it from first/last name for users."""

    title = getattr(entity, "title", None)
    if title:
        return str(title)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    name = " ".join(str(part) for part in [first, last] if part).strip()
    return name or default
