import time
from datetime import datetime, timedelta, timezone

import pytest

from app.client.history import (
    DEFAULT_PREVIEW,
    ConversationHistory,
    KeyValueStorage,
    format_date,
    new_message_id,
    preview_for,
)
from app.models import ConvTurn


@pytest.fixture
def storage(tmp_path):
    return KeyValueStorage(tmp_path / "storage.json")


def turn(user, jarvis="Very good, sir."):
    return ConvTurn(id=new_message_id(), user=user, jarvis=jarvis)


def test_key_value_storage(storage):
    assert storage.get_item("missing") is None
    storage.set_item("a", "1")
    storage.set_item("b", "2")
    assert storage.get_item("a") == "1"
    storage.remove_item("a")
    storage.remove_item("never-set")
    assert storage.get_item("a") is None
    assert storage.get_item("b") == "2"


def test_save_turns_stores_messages_newest_first(storage):
    history = ConversationHistory(storage)

    first = history.save_turns([turn("Hello")])
    second = history.save_turns([turn("Run diagnostics", "All green."), turn("Thanks")])

    saved = history.load()
    assert [c.id for c in saved] == [second.id, first.id]
    assert [(m.role, m.content) for m in saved[0].messages] == [
        ("user", "Run diagnostics"),
        ("assistant", "All green."),
        ("user", "Thanks"),
        ("assistant", "Very good, sir."),
    ]
    assert saved[0].preview == "Run diagnostics"
    assert saved[0].date.endswith("Z")


def test_saving_same_id_replaces_entry(storage):
    history = ConversationHistory(storage)
    conv = history.save_turns([turn("One")])
    other = history.save_turns([turn("Other")])

    updated = history.save_turns([turn("One"), turn("Two")], conversation_id=conv.id)

    saved = history.load()
    assert [c.id for c in saved] == [conv.id, other.id]
    assert len(saved[0].messages) == 4
    assert updated.id == conv.id


def test_history_is_capped(storage):
    history = ConversationHistory(storage, limit=3)
    ids = [history.save_turns([turn(f"q{i}")]).id for i in range(5)]

    saved = history.load()
    assert len(saved) == 3
    assert [c.id for c in saved] == ids[::-1][:3]
    assert len(set(ids)) == 5


def test_preview_is_cut_or_defaulted():
    assert preview_for([turn("x" * 100)]) == "x" * 60
    assert preview_for([turn("")]) == DEFAULT_PREVIEW
    assert preview_for([]) == DEFAULT_PREVIEW


def test_delete_and_clear(storage):
    history = ConversationHistory(storage)
    keep = history.save_turns([turn("keep")])
    drop = history.save_turns([turn("drop")])

    remaining = history.delete(drop.id)
    assert [c.id for c in remaining] == [keep.id]
    assert [c.id for c in history.load()] == [keep.id]

    history.clear()
    assert history.load() == []


def test_corrupt_storage_reads_as_empty(storage):
    storage.set_item("jarvis_conversations", "{not json")
    assert ConversationHistory(storage).load() == []

    storage.path.write_text("garbage", encoding="utf-8")
    assert ConversationHistory(storage).load() == []


def test_message_ids_are_unique():
    ids = {new_message_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("msg-") for i in ids)


def test_format_date():
    now = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)

    def ago(**kwargs):
        return (now - timedelta(**kwargs)).isoformat().replace("+00:00", "Z")

    assert format_date(ago(minutes=30), now) == "Just now"
    assert format_date(ago(hours=5, minutes=40), now) == "5h ago"
    assert format_date(ago(hours=30), now) == "Yesterday"
    week_ago = (now - timedelta(days=7)).astimezone()
    assert format_date(ago(days=7), now) == f"{week_ago.strftime('%b')} {week_ago.day}"


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_format_date_uses_local_calendar_day(monkeypatch):
    # POSIX TZ string: twelve hours ahead of UTC, no tz database needed.
    monkeypatch.setenv("TZ", "NZST-12")
    time.tzset()
    try:
        now = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)
        # 23:30 UTC on Jun 2 is already 11:30 on Jun 3 locally.
        assert format_date("2026-06-02T23:30:00Z", now) == "Jun 3"
    finally:
        monkeypatch.undo()
        time.tzset()
