"""Filter policy evaluation (core domain).

A policy carries exactly one mode object. Each mode owns its parameters and
answers the chat-level question through ``evaluate``; the message-level rule
and the spam/mention heuristics are shared by every mode.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Mapping, Optional, Union

from core.chat_ids import normalize_chat_ids
from core.classifier import classify, display_title
from core.config import (
    LARGE_GROUP_MENTION_THRESHOLD,
    SMART_CHANNEL_MAX_PARTICIPANTS,
    SMART_GROUP_MAX_PARTICIPANTS,
    SPAM_CAPS_MIN_LENGTH,
    SPAM_CAPS_RATIO,
    SPAM_EMOJI_LIMIT,
    SUPER_STRICT_GROUP_MAX_PARTICIPANTS,
)
from core.models import ChatType, Decision, EntityInfo, IncomingMessage

LOGGER = logging.getLogger(__name__)

# Maps an entity id to the lowercase name of the folder it belongs to.
FolderIndex = Mapping[int, str]

# Chat-title vocabulary for crypto, gambling and meme chats. Matched as
# case-insensitive substrings.
SPAM_TITLE_KEYWORDS = (
    # Trading & crypto
    "trading", "crypto", "bitcoin", "btc", "eth", "pump", "signal", "trend",
    "coin", "binance", "solana", "ethereum", "token", "defi", "nft",
    "doge", "shib", "altcoin", "protocol", "dao", "web3", "blockchain",
    "airdrop", "presale", "launch", "listing", "dex", "swap",
    "xrp", "ripple", "cardano", "ada", "matic", "polygon", "bnb",
    "usdt", "usdc", "stablecoin", "luna", "avax", "dot", "link",
    "uni", "sushi", "cake", "farm", "yield", "stake", "mining",
    "hodl", "fomo", "ath", "desci", "seedify", "ido", "ico",
    "pink", "karma", "cult", "nerd", "labs", "origo",
    # Gambling
    "casino", "betting", "win", "lottery", "prize", "jackpot",
    # Memes
    "meme", "trending", "moonshot", "gem",
)

# Message-text markers, compared against the upper-cased text.
SPAM_MESSAGE_MARKERS = (
    "🚀", "💎", "🎰", "💰", "🤑",
    "TO THE MOON", "HODL", "BUY NOW", "PUMP", "LAMBO",
    "SIGNAL", "ENTRY", "TARGET", "STOP LOSS", "TP:", "SL:",
    "CLICK HERE", "FREE MONEY", "GUARANTEED", "100X", "PROFIT",
)

_EMOJI_PATTERN = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF\u2600-\u26FF\u2700-\u27BF]"
)
_CAPS_PATTERN = re.compile(r"[A-Z]")


def is_spam_title(title: Optional[str]) -> bool:
    """Return True when a chat title contains any spam keyword."""

    lowered = (title or "").lower()
    return any(keyword in lowered for keyword in SPAM_TITLE_KEYWORDS)


def is_spam_message(text: str) -> bool:
    """Heuristic spam check for message text.

    Spam if any marker is present, more than five emoji are used, or the text
    is longer than 20 characters with more than half of it in capitals.
    """

    if not text:
        return False
    upper = text.upper()
    if any(marker in upper for marker in SPAM_MESSAGE_MARKERS):
        return True
    if len(_EMOJI_PATTERN.findall(text)) > SPAM_EMOJI_LIMIT:
        return True
    caps_ratio = len(_CAPS_PATTERN.findall(text)) / len(text)
    return caps_ratio > SPAM_CAPS_RATIO and len(text) > SPAM_CAPS_MIN_LENGTH


def check_mention(text: str, me: Any) -> bool:
    """Return True if the text mentions the account by @username or full name."""

    if not text or me is None:
        return False
    lowered = text.lower()
    username = getattr(me, "username", None)
    if username and f"@{username.lower()}" in lowered:
        return True
    first = getattr(me, "first_name", None) or ""
    last = getattr(me, "last_name", None) or ""
    full_name = f"{first} {last}".strip().lower()
    return bool(full_name) and full_name in lowered


def _within(count: Optional[int], limit: int) -> bool:
    # An unknown size never counts as exceeding a threshold.
    return count is None or count <= limit


def _include(reason: str) -> Decision:
    return Decision(included=True, reason=reason)


def _exclude(reason: str) -> Decision:
    return Decision(included=False, reason=reason)


@dataclass(frozen=True)
class SmartMode:
    """Default mode: DMs, small groups and small non-spam channels."""

    block_all_channels: bool = False

    name: ClassVar[str] = "smart"
    mention_gate_threshold: ClassVar[Optional[int]] = LARGE_GROUP_MENTION_THRESHOLD
    mention_gate_all_groups: ClassVar[bool] = False

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        count = chat.participant_count
        if chat_type is ChatType.DM:
            return _include("direct message")
        if chat_type is ChatType.CHANNEL:
            if self.block_all_channels:
                return _exclude("all channels blocked")
            if count is not None and count > SMART_CHANNEL_MAX_PARTICIPANTS:
                return _exclude(f"channel has {count} participants")
        if chat_type in (ChatType.CHANNEL, ChatType.GROUP) and is_spam_title(chat.title):
            return _exclude("title matches spam keywords")
        if chat_type is ChatType.GROUP and _within(count, SMART_GROUP_MAX_PARTICIPANTS):
            return _include("small group")
        if chat_type is ChatType.CHANNEL and _within(count, SMART_CHANNEL_MAX_PARTICIPANTS):
            return _include("small channel")
        return _exclude(f"{chat_type.value} not allowed in smart mode")


@dataclass(frozen=True)
class DmOnlyMode:
    """Only one-to-one chats with humans."""

    name: ClassVar[str] = "dm_only"
    mention_gate_threshold: ClassVar[Optional[int]] = None
    mention_gate_all_groups: ClassVar[bool] = False

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        if chat_type is ChatType.DM:
            return _include("direct message")
        return _exclude(f"{chat_type.value} excluded in dm_only mode")


@dataclass(frozen=True)
class NoChannelsMode:
    """Everything except channels and spam-titled groups."""

    name: ClassVar[str] = "no_channels"
    mention_gate_threshold: ClassVar[Optional[int]] = None
    mention_gate_all_groups: ClassVar[bool] = False

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        if chat_type is ChatType.CHANNEL:
            return _exclude("channels blocked")
        if chat_type is ChatType.GROUP and is_spam_title(chat.title):
            return _exclude("title matches spam keywords")
        return _include(f"{chat_type.value} allowed")


@dataclass(frozen=True)
class SuperStrictMode:
    """DMs plus tiny groups; group messages also need a mention."""

    name: ClassVar[str] = "super_strict"
    mention_gate_threshold: ClassVar[Optional[int]] = None
    mention_gate_all_groups: ClassVar[bool] = True

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        if chat_type is ChatType.DM:
            return _include("direct message")
        if chat_type is ChatType.GROUP and _within(
            chat.participant_count, SUPER_STRICT_GROUP_MAX_PARTICIPANTS
        ):
            return _include("small group")
        return _exclude(f"{chat_type.value} excluded in super_strict mode")


@dataclass(frozen=True)
class ExcludeKeywordsMode:
    """Everything except chats whose title contains a configured keyword."""

    keywords: frozenset[str] = frozenset()
    block_all_channels: bool = False

    name: ClassVar[str] = "exclude_keywords"
    mention_gate_threshold: ClassVar[Optional[int]] = LARGE_GROUP_MENTION_THRESHOLD
    mention_gate_all_groups: ClassVar[bool] = False

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        title = display_title(chat, default="").lower()
        hits = sorted(keyword for keyword in self.keywords if keyword in title)
        if hits:
            return _exclude(f"title keyword(s): {', '.join(hits)}")
        if self.block_all_channels and chat_type is ChatType.CHANNEL:
            return _exclude("all channels blocked")
        return _include("no excluded keyword")


@dataclass(frozen=True)
class ExcludeFoldersMode:
    """Everything except chats filed in one of the excluded folders."""

    folders: frozenset[str] = frozenset()

    name: ClassVar[str] = "exclude_folders"
    mention_gate_threshold: ClassVar[Optional[int]] = None
    mention_gate_all_groups: ClassVar[bool] = False

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        if not self.folders:
            return _include("no excluded folders configured")
        if folders is None:
            return _include("folder data unavailable")
        folder = folders.get(chat.id)
        if folder and folder in self.folders:
            return _exclude(f"in excluded folder '{folder}'")
        return _include("not in an excluded folder")


@dataclass(frozen=True)
class AllowlistMode:
    """Only chats whose id is on the allow-list."""

    chat_ids: frozenset[int] = frozenset()

    name: ClassVar[str] = "allowlist"
    mention_gate_threshold: ClassVar[Optional[int]] = None
    mention_gate_all_groups: ClassVar[bool] = False

    def __post_init__(self) -> None:
        if not self.chat_ids:
            LOGGER.warning("Allowlist mode has no chat ids configured; including every chat")

    def evaluate(
        self, chat: EntityInfo, chat_type: ChatType, folders: Optional[FolderIndex] = None
    ) -> Decision:
        if not self.chat_ids:
            return _include("empty allowlist includes everything")
        if chat.id in self.chat_ids:
            return _include("chat id allowed")
        return _exclude("chat id not in allowlist")


FilterMode = Union[
    SmartMode,
    DmOnlyMode,
    NoChannelsMode,
    SuperStrictMode,
    ExcludeKeywordsMode,
    ExcludeFoldersMode,
    AllowlistMode,
]

MODE_NAMES = (
    SmartMode.name,
    DmOnlyMode.name,
    NoChannelsMode.name,
    SuperStrictMode.name,
    ExcludeKeywordsMode.name,
    ExcludeFoldersMode.name,
    AllowlistMode.name,
)


@dataclass(frozen=True)
class FilterPolicy:
    """Immutable filter configuration shared by every pipeline stage."""

    mode: FilterMode = field(default_factory=SmartMode)
    debug: bool = False

    @property
    def mode_name(self) -> str:
        return self.mode.name


def _lowered(values: Iterable[Any]) -> frozenset[str]:
    return frozenset(str(value).strip().lower() for value in values if str(value).strip())


def build_mode(filter_config: Mapping[str, Any]) -> FilterMode:
    """Build the mode object named by ``filter_config['mode']``.

    Unknown mode names fall back to smart mode with a warning.
    """

    mode_name = str(filter_config.get("mode") or SmartMode.name).strip().lower()
    block_all_channels = bool(filter_config.get("block_all_channels", False))

    if mode_name == SmartMode.name:
        return SmartMode(block_all_channels=block_all_channels)
    if mode_name == DmOnlyMode.name:
        return DmOnlyMode()
    if mode_name == NoChannelsMode.name:
        return NoChannelsMode()
    if mode_name == SuperStrictMode.name:
        return SuperStrictMode()
    if mode_name == ExcludeKeywordsMode.name:
        return ExcludeKeywordsMode(
            keywords=_lowered(filter_config.get("excluded_keywords", [])),
            block_all_channels=block_all_channels,
        )
    if mode_name == ExcludeFoldersMode.name:
        return ExcludeFoldersMode(folders=_lowered(filter_config.get("excluded_folders", [])))
    if mode_name == AllowlistMode.name:
        return AllowlistMode(chat_ids=normalize_chat_ids(filter_config.get("allowed_chat_ids", [])))

    LOGGER.warning("Unknown filter mode %r; falling back to %s", mode_name, SmartMode.name)
    return SmartMode(block_all_channels=block_all_channels)


def build_policy(filter_config: Mapping[str, Any], debug: bool = False) -> FilterPolicy:
    """Build a FilterPolicy from the ``filter`` section of the config file."""

    return FilterPolicy(mode=build_mode(filter_config), debug=debug)


def evaluate_chat(
    chat: EntityInfo, policy: FilterPolicy, folders: Optional[FolderIndex] = None
) -> Decision:
    """Return the chat-level decision for the active mode."""

    chat_type = classify(chat)
    decision = policy.mode.evaluate(chat, chat_type, folders)
    if policy.debug:
        LOGGER.info(
            "Chat %s [%s, members=%s]: %s (%s)",
            display_title(chat),
            chat_type.value,
            chat.participant_count if chat.participant_count is not None else "N/A",
            "include" if decision.included else "exclude",
            decision.reason,
        )
    return decision


def should_include_chat(
    chat: EntityInfo, policy: FilterPolicy, folders: Optional[FolderIndex] = None
) -> bool:
    return evaluate_chat(chat, policy, folders).included


def evaluate_message(
    message: IncomingMessage,
    chat_type: ChatType,
    policy: FilterPolicy,
    *,
    is_from_self: Optional[bool] = None,
    is_mention: bool = False,
) -> Decision:
    """Return the message-level decision, applied after chat inclusion."""

    from_self = message.is_outgoing if is_from_self is None else is_from_self
    text = message.text or ""
    if not text.strip():
        return _exclude("empty text")
    if is_spam_message(text):
        return _exclude("spam message")
    if chat_type is ChatType.GROUP and message.is_forwarded and not from_self:
        return _exclude("forward in group")
    if (
        policy.mode.mention_gate_all_groups
        and chat_type is ChatType.GROUP
        and not (from_self or is_mention)
    ):
        return _exclude("group message without mention")
    return _include("message allowed")


def should_include_message(
    message: IncomingMessage,
    chat_type: ChatType,
    policy: FilterPolicy,
    *,
    is_from_self: Optional[bool] = None,
    is_mention: bool = False,
) -> bool:
    return evaluate_message(
        message, chat_type, policy, is_from_self=is_from_self, is_mention=is_mention
    ).included


def requires_mention(chat: EntityInfo, chat_type: ChatType, policy: FilterPolicy) -> bool:
    """Return True when live group messages must mention the account.

    Applies only to groups: every group under super_strict, and groups with a
    known participant count above the mode threshold otherwise.
    """

    if chat_type is not ChatType.GROUP:
        return False
    mode = policy.mode
    if mode.mention_gate_all_groups:
        return True
    threshold = mode.mention_gate_threshold
    if threshold is None or chat.participant_count is None:
        return False
    return chat.participant_count > threshold
