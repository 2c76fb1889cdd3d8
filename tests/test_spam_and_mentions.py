from __future__ import annotations

from core.models import EntityInfo
from core.policy import check_mention, is_spam_message, is_spam_title

ME = EntityInfo(id=1, first_name="Alice", last_name="Smith", username="alice_s")


def test_spam_titles() -> None:
    assert is_spam_title("Crypto Pump Signals")
    assert is_spam_title("BTC Club")
    assert not is_spam_title("Family")
    assert not is_spam_title(None)


def test_emoji_limit_is_exclusive() -> None:
    assert not is_spam_message("\U0001F600" * 5)
    assert is_spam_message("\U0001F600" * 6)


def test_caps_ratio_boundary() -> None:
    # 22 characters, exactly half of them capitals.
    assert not is_spam_message("ABCDEFGHIJKabcdefghijk")
    assert is_spam_message("ABCDEFGHIJKLabcdefghij")


def test_short_shouting_is_not_spam() -> None:
    assert not is_spam_message("HELLO THERE")


def test_markers_are_case_insensitive() -> None:
    assert is_spam_message("we are going to the moon")
    assert is_spam_message("rocket \U0001F680")
    assert not is_spam_message("dinner at 7")
    assert not is_spam_message("")


def test_mentions_by_username_or_full_name() -> None:
    assert check_mention("hey @Alice_S can you look", ME)
    assert check_mention("I asked ALICE SMITH yesterday", ME)
    assert not check_mention("alice said hi", ME)
    assert not check_mention("", ME)
    assert not check_mention("@alice_s", None)


def test_nameless_account_never_matches() -> None:
    assert not check_mention("anything at all", EntityInfo(id=1))
