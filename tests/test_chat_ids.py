from __future__ import annotations

from core.chat_ids import expand_chat_id_variants, normalize_chat_ids, parse_chat_id


def test_expand_chat_id_variants_positive() -> None:
    variants = expand_chat_id_variants(123)
    assert variants == {123, -123, -1000000000123}


def test_expand_chat_id_variants_negative_100() -> None:
    variants = expand_chat_id_variants(-100987654321)
    assert variants == {-100987654321, 987654321}


def test_expand_chat_id_variants_basic_group() -> None:
    assert expand_chat_id_variants(-42) == {-42, 42}


def test_parse_chat_id() -> None:
    assert parse_chat_id(7) == 7
    assert parse_chat_id(" -1001 ") == -1001
    assert parse_chat_id("chat_id:55") is None
    assert parse_chat_id("family") is None
    assert parse_chat_id(True) is None


def test_normalize_chat_ids_skips_junk() -> None:
    assert normalize_chat_ids(["-1005", "nope", 9]) == frozenset({-1005, 5, 9, -9, -1000000000009})
