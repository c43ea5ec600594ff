"""Tests for the short link directory."""

from __future__ import annotations

import json
import random
from collections.abc import Sequence
from pathlib import Path

import pytest

from locshare.lib.store import FileStore, MemoryStore
from locshare.models.shortlink import (
    LINK_INDEX_KEY,
    MIN_CODE_LENGTH,
    SHORT_CODE_ALPHABET,
    ShortLink,
    ShortLinkDirectory,
    get_link_key,
    link_stats,
    sort_newest_first,
)


class ScriptedRandom:
    """Random stand-in that returns pre-chosen characters in order."""

    def __init__(self, text: str) -> None:
        self._chars = iter(text)

    def choice(self, seq: Sequence[str]) -> str:
        char = next(self._chars)
        assert char in seq
        return char


def _directory(store: MemoryStore, **kwargs: object) -> ShortLinkDirectory:
    kwargs.setdefault("rng", random.Random(1234))
    kwargs.setdefault("clock", lambda: 1_700_000_000_000)
    return ShortLinkDirectory(store, **kwargs)  # type: ignore[arg-type]


@pytest.mark.ai_generated
class TestCreate:
    """Tests for creating short links."""

    def test_code_shape(self, store: MemoryStore) -> None:
        """Test that codes are six alphanumeric characters."""
        code = _directory(store).create("http://x/map/s1", "s1")

        assert len(code) == 6
        assert set(code) <= set(SHORT_CODE_ALPHABET)

    def test_alphabet(self) -> None:
        """Test the 62-character code alphabet."""
        assert len(SHORT_CODE_ALPHABET) == 62
        assert len(set(SHORT_CODE_ALPHABET)) == 62

    def test_resolve_created(self, store: MemoryStore) -> None:
        """Test that a created link resolves to its target with no clicks."""
        directory = _directory(store)
        code = directory.create("http://x/map/s1", "s1")

        link = directory.resolve(code)

        assert link == ShortLink(
            short_code=code,
            original_url="http://x/map/s1",
            session_id="s1",
            created_at=1_700_000_000_000,
            clicks=0,
        )

    def test_persisted_layout(self, store: MemoryStore) -> None:
        """Test that the record and index are stored under their keys."""
        code = _directory(store).create("http://x/map/s1", "s1")

        raw = store.get(get_link_key(code))
        assert raw is not None
        assert json.loads(raw)["shortCode"] == code
        assert json.loads(store.get(LINK_INDEX_KEY) or "[]") == [code]

    def test_many_codes_are_distinct(self, store: MemoryStore) -> None:
        """Test that sequential creates never hand out the same code."""
        directory = _directory(store)
        codes = [directory.create(f"http://x/map/s{i}", f"s{i}") for i in range(200)]

        listed = [link.short_code for link in directory.list_links()]
        assert len(listed) == 200
        assert len(set(listed)) == 200
        assert listed == codes

    def test_collision_draws_again(self, store: MemoryStore) -> None:
        """Test that a colliding code is replaced by a fresh one."""
        directory = _directory(store, rng=ScriptedRandom("aaaaaa" + "aaaaaa" + "aaaaaa" + "bbbbbb"))

        first = directory.create("http://x/map/s1", "s1")
        second = directory.create("http://x/map/s2", "s2")

        assert first == "aaaaaa"
        assert second == "bbbbbb"
        link = directory.resolve("aaaaaa")
        assert link is not None and link.session_id == "s1"

    def test_collision_with_record_outside_index(self, store: MemoryStore) -> None:
        """Test that a stored record missing from the index is not overwritten."""
        orphan = ShortLink("cccccc", "http://x/map/old", "old", 1, clicks=4)
        store.set(get_link_key("cccccc"), json.dumps(orphan.to_dict()))
        directory = _directory(store, rng=ScriptedRandom("cccccc" + "dddddd"))

        assert directory.create("http://x/map/new", "new") == "dddddd"
        assert directory.resolve("cccccc") == orphan

    def test_custom_code_length(self, store: MemoryStore) -> None:
        """Test a configured code length."""
        assert len(_directory(store, code_length=8).create("u", "s")) == 8

    @pytest.mark.parametrize("length", [0, 1, MIN_CODE_LENGTH - 1])
    def test_too_short_code_length_rejected(self, store: MemoryStore, length: int) -> None:
        """Test that lengths too small to hold distinct codes are refused."""
        with pytest.raises(ValueError, match="code_length must be at least"):
            _directory(store, code_length=length)

    def test_unreadable_record_counts_as_taken(self, tmp_path: Path) -> None:
        """Test that a code whose file cannot be decoded is not reused."""
        store = FileStore(tmp_path)
        store.path_for(get_link_key("aaaaaa")).write_bytes(b"\xff\xfe")
        directory = ShortLinkDirectory(store, rng=ScriptedRandom("aaaaaa" + "bbbbbb"))  # type: ignore[arg-type]

        assert directory.create("u", "s") == "bbbbbb"
        assert directory.resolve("aaaaaa") is None


@pytest.mark.ai_generated
class TestResolveAndClicks:
    """Tests for resolving codes and counting clicks."""

    def test_unknown_code(self, store: MemoryStore) -> None:
        """Test that an unknown code is not found."""
        assert _directory(store).resolve("zzzzzz") is None

    def test_clicks_accumulate(self, store: MemoryStore) -> None:
        """Test that each recorded click increments the counter."""
        directory = _directory(store)
        code = directory.create("http://x/map/s1", "s1")

        for _ in range(3):
            directory.record_click(code)

        link = directory.resolve(code)
        assert link is not None
        assert link.clicks == 3

    def test_click_on_unknown_code_is_noop(self, store: MemoryStore) -> None:
        """Test that clicking an unknown code neither raises nor creates a record."""
        directory = _directory(store)

        directory.record_click("nope00")

        assert store.get(get_link_key("nope00")) is None
        assert directory.list_links() == []

    @pytest.mark.parametrize(
        "raw",
        [
            "garbage",
            '"a string"',
            '{"shortCode": "abc123"}',
            '{"shortCode": "abc123", "originalUrl": "u", "sessionId": "s", "createdAt": 1, "clicks": -2}',
            '{"schemaVersion": 2, "shortCode": "abc123", "originalUrl": "u", "sessionId": "s", "createdAt": 1}',
        ],
    )
    def test_malformed_record_is_not_found(self, store: MemoryStore, raw: str) -> None:
        """Test that malformed records resolve as not found."""
        store.set(get_link_key("abc123"), raw)

        assert _directory(store).resolve("abc123") is None

    def test_record_without_schema_version(self, store: MemoryStore) -> None:
        """Test that records written before versioning still resolve."""
        store.set(
            get_link_key("Ab12Cd"),
            json.dumps({
                "shortCode": "Ab12Cd",
                "originalUrl": "https://host/map/s1",
                "sessionId": "s1",
                "createdAt": 5,
                "clicks": 2,
            }),
        )

        link = _directory(store).resolve("Ab12Cd")

        assert link is not None
        assert link.clicks == 2


@pytest.mark.ai_generated
class TestListAndDelete:
    """Tests for listing and deleting links."""

    def test_list_skips_codes_without_records(self, store: MemoryStore) -> None:
        """Test that index entries with no record are tolerated."""
        directory = _directory(store)
        code = directory.create("http://x/map/s1", "s1")
        store.set(LINK_INDEX_KEY, json.dumps([code, "ghost1"]))

        assert [link.short_code for link in directory.list_links()] == [code]

    def test_malformed_index_lists_nothing(self, store: MemoryStore) -> None:
        """Test that an unreadable index is treated as empty."""
        store.set(LINK_INDEX_KEY, '{"not": "a list"}')

        assert _directory(store).list_links() == []

    def test_delete(self, store: MemoryStore) -> None:
        """Test that a deleted code no longer resolves or lists."""
        directory = _directory(store)
        keep = directory.create("http://x/map/s1", "s1")
        gone = directory.create("http://x/map/s2", "s2")

        directory.delete(gone)

        assert directory.resolve(gone) is None
        assert [link.short_code for link in directory.list_links()] == [keep]
        assert json.loads(store.get(LINK_INDEX_KEY) or "[]") == [keep]

    def test_delete_unknown_is_noop(self, store: MemoryStore) -> None:
        """Test that deleting an unknown code changes nothing."""
        directory = _directory(store)
        code = directory.create("http://x/map/s1", "s1")
        index_before = store.get(LINK_INDEX_KEY)

        directory.delete("nope00")

        assert store.get(LINK_INDEX_KEY) == index_before
        assert directory.resolve(code) is not None


@pytest.mark.ai_generated
class TestLinkStats:
    """Tests for link statistics helpers."""

    def test_empty(self) -> None:
        """Test statistics with no links."""
        assert link_stats([]) == {"total_links": 0, "total_clicks": 0, "average_clicks": 0}

    def test_totals_and_average(self) -> None:
        """Test totals and the rounded average."""
        links = [
            ShortLink("aaaaaa", "u", "s", 1, clicks=1),
            ShortLink("bbbbbb", "u", "s", 2, clicks=2),
            ShortLink("cccccc", "u", "s", 3, clicks=2),
        ]

        assert link_stats(links) == {"total_links": 3, "total_clicks": 5, "average_clicks": 1.7}

    def test_sort_newest_first(self) -> None:
        """Test ordering by creation time."""
        links = [ShortLink("old", "u", "s", 1), ShortLink("new", "u", "s", 3), ShortLink("mid", "u", "s", 2)]

        assert [link.short_code for link in sort_newest_first(links)] == ["new", "mid", "old"]
