from __future__ import annotations

from core.models import ChatType, EntityInfo, IncomingMessage
from core.policy import (
    AllowlistMode,
    DmOnlyMode,
    ExcludeFoldersMode,
    ExcludeKeywordsMode,
    FilterPolicy,
    NoChannelsMode,
    SmartMode,
    SuperStrictMode,
    build_mode,
    build_policy,
    evaluate_chat,
    evaluate_message,
    requires_mention,
    should_include_chat,
    should_include_message,
)

DM = EntityInfo(id=10, first_name="Alice")
BOT = EntityInfo(id=11, first_name="Helper", is_bot=True)


def _group(count, title: str = "Family", chat_id: int = 20) -> EntityInfo:
    return EntityInfo(id=chat_id, title=title, is_megagroup=True, participant_count=count)


def _channel(count, title: str = "Local News", chat_id: int = 30) -> EntityInfo:
    return EntityInfo(id=chat_id, title=title, is_broadcast=True, participant_count=count)


def _message(text: str, *, forwarded: bool = False, outgoing: bool = False) -> IncomingMessage:
    return IncomingMessage(
        chat_id=20,
        sender_id=5,
        message_id=1,
        text=text,
        send_time=1_700_000_000,
        is_forwarded=forwarded,
        is_outgoing=outgoing,
    )


def test_large_spam_channel_is_excluded_in_smart_mode() -> None:
    chat = _channel(1200, title="Crypto Pump Signals")
    assert not should_include_chat(chat, FilterPolicy(SmartMode()))


def test_small_family_group_message_is_logged_in_smart_mode() -> None:
    policy = FilterPolicy(SmartMode())
    chat = EntityInfo(id=20, title="Family", participant_count=6)
    assert should_include_chat(chat, policy)
    assert should_include_message(_message("dinner at 7"), ChatType.GROUP, policy)


def test_smart_mode_table() -> None:
    policy = FilterPolicy(SmartMode())
    assert evaluate_chat(DM, policy).included
    assert evaluate_chat(_group(500), policy).included
    assert not evaluate_chat(_group(501), policy).included
    assert evaluate_chat(_channel(1000), policy).included
    assert not evaluate_chat(_channel(1001), policy).included
    assert not evaluate_chat(_group(10, title="Trading Desk"), policy).included
    assert not evaluate_chat(BOT, policy).included


def test_smart_mode_unknown_size_is_within_limits() -> None:
    policy = FilterPolicy(SmartMode())
    assert evaluate_chat(_group(None), policy).included
    assert evaluate_chat(_channel(None), policy).included


def test_smart_mode_can_block_every_channel() -> None:
    decision = evaluate_chat(_channel(10), FilterPolicy(SmartMode(block_all_channels=True)))
    assert not decision.included
    assert decision.reason == "all channels blocked"


def test_dm_only_mode() -> None:
    policy = FilterPolicy(DmOnlyMode())
    assert evaluate_chat(DM, policy).included
    assert not evaluate_chat(_group(3), policy).included
    assert not evaluate_chat(BOT, policy).included


def test_no_channels_mode() -> None:
    policy = FilterPolicy(NoChannelsMode())
    assert not evaluate_chat(_channel(5), policy).included
    assert not evaluate_chat(_group(5, title="Casino Nights"), policy).included
    assert evaluate_chat(_group(5000), policy).included
    assert evaluate_chat(BOT, policy).included


def test_super_strict_mode() -> None:
    policy = FilterPolicy(SuperStrictMode())
    assert evaluate_chat(DM, policy).included
    assert evaluate_chat(_group(50), policy).included
    assert not evaluate_chat(_group(51), policy).included
    assert not evaluate_chat(_channel(5), policy).included


def test_exclude_keywords_mode() -> None:
    policy = FilterPolicy(ExcludeKeywordsMode(keywords=frozenset({"office"})))
    assert not evaluate_chat(_group(5, title="Office Chatter"), policy).included
    assert evaluate_chat(_group(5), policy).included
    assert evaluate_chat(_channel(5000), policy).included

    blocking = FilterPolicy(ExcludeKeywordsMode(keywords=frozenset(), block_all_channels=True))
    assert not evaluate_chat(_channel(5), blocking).included


def test_exclude_folders_mode() -> None:
    policy = FilterPolicy(ExcludeFoldersMode(folders=frozenset({"office"})))
    folders = {20: "office", 21: "friends"}
    assert not evaluate_chat(_group(5, chat_id=20), policy, folders).included
    assert evaluate_chat(_group(5, chat_id=21), policy, folders).included
    assert evaluate_chat(_group(5, chat_id=22), policy, folders).included
    # Without folder data nothing can be excluded.
    assert evaluate_chat(_group(5, chat_id=20), policy, None).included


def test_allowlist_matches_any_peer_form() -> None:
    mode = build_mode({"mode": "allowlist", "allowed_chat_ids": ["-1001234567890", 77]})
    assert isinstance(mode, AllowlistMode)
    policy = FilterPolicy(mode)
    assert evaluate_chat(_channel(5, chat_id=1234567890), policy).included
    assert evaluate_chat(_group(5, chat_id=77), policy).included
    assert not evaluate_chat(_group(5, chat_id=78), policy).included


def test_empty_allowlist_includes_everything() -> None:
    policy = FilterPolicy(AllowlistMode())
    assert evaluate_chat(_channel(5000, title="Crypto Pump Signals"), policy).included
    assert evaluate_chat(BOT, policy).included


def test_build_mode_reads_parameters() -> None:
    mode = build_mode({"mode": "Exclude_Keywords", "excluded_keywords": ["Office", " "]})
    assert mode == ExcludeKeywordsMode(keywords=frozenset({"office"}))

    folders = build_mode({"mode": "exclude_folders", "excluded_folders": ["Work"]})
    assert folders == ExcludeFoldersMode(folders=frozenset({"work"}))


def test_unknown_mode_falls_back_to_smart() -> None:
    policy = build_policy({"mode": "everything", "block_all_channels": True})
    assert policy.mode == SmartMode(block_all_channels=True)
    assert policy.mode_name == "smart"
    assert build_policy({}).mode_name == "smart"


def test_message_rules() -> None:
    policy = FilterPolicy(SmartMode())
    assert evaluate_message(_message("   "), ChatType.DM, policy).reason == "empty text"
    assert not evaluate_message(_message("BUY NOW please"), ChatType.DM, policy).included
    assert not evaluate_message(_message("look at this", forwarded=True), ChatType.GROUP, policy).included
    assert evaluate_message(_message("look at this", forwarded=True, outgoing=True), ChatType.GROUP, policy).included
    assert evaluate_message(_message("look at this", forwarded=True), ChatType.DM, policy).included


def test_super_strict_group_messages_need_self_or_mention() -> None:
    policy = FilterPolicy(SuperStrictMode())
    message = _message("see you tomorrow")
    assert not evaluate_message(message, ChatType.GROUP, policy).included
    assert evaluate_message(message, ChatType.GROUP, policy, is_mention=True).included
    assert evaluate_message(message, ChatType.GROUP, policy, is_from_self=True).included
    assert evaluate_message(message, ChatType.DM, policy).included


def test_requires_mention() -> None:
    smart = FilterPolicy(SmartMode())
    assert requires_mention(_group(101), ChatType.GROUP, smart)
    assert not requires_mention(_group(100), ChatType.GROUP, smart)
    assert not requires_mention(_group(None), ChatType.GROUP, smart)
    assert not requires_mention(_channel(5000), ChatType.CHANNEL, smart)

    strict = FilterPolicy(SuperStrictMode())
    assert requires_mention(_group(3), ChatType.GROUP, strict)
    assert not requires_mention(DM, ChatType.DM, strict)

    assert not requires_mention(_group(5000), ChatType.GROUP, FilterPolicy(NoChannelsMode()))
