from __future__ import annotations

from types import SimpleNamespace

from core.classifier import classify, display_title
from core.models import ChatType, EntityInfo


def test_broadcast_is_channel() -> None:
    assert classify(EntityInfo(id=1, is_broadcast=True, participant_count=10)) is ChatType.CHANNEL


def test_megagroup_wins_over_broadcast() -> None:
    entity = EntityInfo(id=1, is_broadcast=True, is_megagroup=True)
    assert classify(entity) is ChatType.GROUP


def test_participant_count_marks_basic_group() -> None:
    assert classify(EntityInfo(id=1, title="Family", participant_count=6)) is ChatType.GROUP


def test_bot_and_user() -> None:
    assert classify(EntityInfo(id=1, first_name="Helper", is_bot=True)) is ChatType.BOT
    assert classify(EntityInfo(id=2, first_name="Alice")) is ChatType.DM


def test_missing_attributes_default_to_dm() -> None:
    assert classify(object()) is ChatType.DM
    assert classify(SimpleNamespace(is_broadcast=None, participant_count="12")) is ChatType.DM


def test_display_title_prefers_title_then_names() -> None:
    assert display_title(EntityInfo(id=1, title="Book Club")) == "Book Club"
    assert display_title(EntityInfo(id=1, first_name="Alice", last_name="Smith")) == "Alice Smith"
    assert display_title(EntityInfo(id=1), default="User_1") == "User_1"
