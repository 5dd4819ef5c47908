from __future__ import annotations

import json
import random
import time
from datetime import datetime, timezone

import pytest

from newsspeak.bookmarks import BookmarkStore
from newsspeak.datamodels import Article
from newsspeak.storage import FileStorage, MemoryStorage, StorageArea


def make_article(url, title="Title"):
    return Article(
        title=title,
        url=url,
        description="Desc",
        image_url="https://img.example.com/x.png",
        published_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        source_name="Wire",
    )


@pytest.fixture
def store():
    return BookmarkStore(MemoryStorage())


def test_adding_twice_keeps_one_bookmark(store):
    store.add(make_article("u1"))
    store.add(make_article("u1"))
    assert len(store.list()) == 1


def test_add_and_remove_round_trip(store):
    article = make_article("u1")
    store.add(article)
    assert store.is_bookmarked("u1")
    store.remove("u1")
    assert not store.is_bookmarked("u1")


def test_remove_missing_is_noop(store):
    store.add(make_article("u1"))
    store.remove("nope")
    assert [b.url for b in store.list()] == ["u1"]


def test_list_keeps_insertion_order(store):
    for url in ("c", "a", "b"):
        store.add(make_article(url))
    assert [b.url for b in store.list()] == ["c", "a", "b"]


def test_clear_empties_store(store):
    store.add(make_article("a"))
    store.add(make_article("b"))
    store.clear()
    assert store.list() == []
    assert json.loads(store.storage.get(store.key)) == []


def test_toggle(store):
    article = make_article("u1")
    assert store.toggle(article) is True
    assert store.is_bookmarked("u1")
    assert store.toggle(article) is False
    assert not store.is_bookmarked("u1")


def test_persisted_record_drops_image_and_description(store):
    store.add(make_article("u1", title="Hello"))
    records = json.loads(store.storage.get("newsBookmarks"))
    assert records == [
        {
            "title": "Hello",
            "url": "u1",
            "publishedAt": "2024-01-02T00:00:00Z",
            "source": "Wire",
        }
    ]


def test_absent_or_corrupt_slot_reads_as_empty():
    storage = MemoryStorage()
    assert BookmarkStore(storage).list() == []
    storage.set("newsBookmarks", "{not json")
    assert BookmarkStore(storage).list() == []
    storage.set("newsBookmarks", json.dumps({"url": "x"}))
    assert BookmarkStore(storage).list() == []
    storage.set("newsBookmarks", json.dumps([{"url": ["x"]}, {"url": 5}, "u", {"url": "ok", "title": 3}]))
    assert [(b.url, b.title) for b in BookmarkStore(storage).list()] == [("ok", "")]


def test_matches_model_for_random_add_remove_sequences(store):
    rng = random.Random(1234)
    urls = [f"u{i}" for i in range(6)]
    expected = []
    for _ in range(200):
        url = rng.choice(urls)
        if rng.random() < 0.6:
            store.add(make_article(url))
            if url not in expected:
                expected.append(url)
        else:
            store.remove(url)
            if url in expected:
                expected.remove(url)
        listed = [b.url for b in store.list()]
        assert len(listed) == len(set(listed))
    assert [b.url for b in store.list()] == expected


def test_other_instance_sees_changes_without_polling():
    area = StorageArea()
    tab_a = BookmarkStore(MemoryStorage(area))
    tab_b = BookmarkStore(MemoryStorage(area))
    seen = []
    tab_b.subscribe(lambda bookmarks: seen.append([b.url for b in bookmarks]))

    tab_a.add(make_article("u1"))

    assert tab_b.is_bookmarked("u1")
    assert seen == [["u1"]]


def test_writer_does_not_receive_its_own_storage_event():
    area = StorageArea()
    writer = MemoryStorage(area)
    other = MemoryStorage(area)
    writer_events, other_events = [], []
    writer.subscribe(writer_events.append)
    other.subscribe(other_events.append)

    writer.set("k", "v")

    assert writer_events == []
    assert len(other_events) == 1
    assert other_events[0].key == "k"
    assert other_events[0].old_value is None
    assert other_events[0].new_value == "v"


def test_add_respects_bookmarks_written_elsewhere():
    area = StorageArea()
    tab_a = BookmarkStore(MemoryStorage(area))
    tab_b = BookmarkStore(MemoryStorage(area))
    tab_b.close()

    tab_a.add(make_article("u1"))
    tab_b.add(make_article("u1"))
    tab_b.add(make_article("u2"))

    assert [b.url for b in tab_b.list()] == ["u1", "u2"]


def test_file_storage_persists_across_instances(tmp_path):
    first = BookmarkStore(FileStorage(str(tmp_path)))
    first.add(make_article("u1"))
    first.close()

    reopened = BookmarkStore(FileStorage(str(tmp_path)))
    assert [b.url for b in reopened.list()] == ["u1"]
    assert (tmp_path / "newsBookmarks.json").exists()


def test_file_storage_notifies_other_instances(tmp_path):
    tab_a = BookmarkStore(FileStorage(str(tmp_path)))
    tab_b = BookmarkStore(FileStorage(str(tmp_path)))

    tab_a.add(make_article("u1"))
    assert tab_b.is_bookmarked("u1")

    tab_a.clear()
    assert tab_b.list() == []


def test_file_storage_remove_deletes_slot(tmp_path):
    storage = FileStorage(str(tmp_path))
    storage.set("slot", "value")
    assert storage.get("slot") == "value"
    storage.remove("slot")
    assert storage.get("slot") is None
    assert not (tmp_path / "slot.json").exists()


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.05)
    return predicate()


def test_watched_file_storage_sees_writes_from_another_process(tmp_path):
    storage = FileStorage(str(tmp_path), watch=True)
    store = BookmarkStore(storage)
    changes = []
    store.subscribe(changes.append)
    try:
        slot = tmp_path / "newsBookmarks.json"
        slot.write_text(json.dumps([{"title": "T", "url": "u1"}]), encoding="utf-8")
        assert wait_for(lambda: store.is_bookmarked("u1"))
        assert changes

        slot.unlink()
        assert wait_for(lambda: not store.is_bookmarked("u1"))
    finally:
        store.close()
        storage.close()


def test_watched_file_storage_does_not_echo_own_writes(tmp_path):
    storage = FileStorage(str(tmp_path), watch=True)
    events = []
    storage.subscribe(events.append)
    try:
        storage.set("slot", "value")
        storage.remove("slot")
        time.sleep(0.5)
        assert events == []
    finally:
        storage.close()


def test_file_storage_close_without_watch_is_harmless(tmp_path):
    storage = FileStorage(str(tmp_path))
    storage.close()
    storage.set("slot", "value")
    assert storage.get("slot") == "value"
