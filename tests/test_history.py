"""
Tests for the history ledgers, display helpers and remote mirroring.
"""

import json
import logging
from datetime import datetime

import pytest

from hyokai_storage import keys
from hyokai_storage.exceptions import RemoteStoreError
from hyokai_storage.history import (
    MAX_HISTORY_ENTRIES,
    MAX_SIMPLE_HISTORY_ENTRIES,
    CompareModelResult,
    HistoryEntry,
    HistoryLedger,
    HistoryMirror,
    ModelOutput,
    SimpleHistoryLedger,
    SingleModelResult,
    TaskMode,
    format_timestamp,
    truncate_text,
)
from hyokai_storage.remote.base import RemoteTable


def single(output: str = "result") -> SingleModelResult:
    return SingleModelResult(model_name="gpt-4o", model_provider="openai", output=output)


class TestHistoryLedger:
    """Tests for the advanced-mode ledger."""

    @pytest.mark.asyncio
    async def test_append_is_newest_first(self, store):
        ledger = HistoryLedger(store)

        first = await ledger.append("one", TaskMode.CODING, single("1"))
        second = await ledger.append("two", TaskMode.PROMPTING, single("2"))

        loaded = await HistoryLedger(store).load()
        assert [e.id for e in loaded] == [second.id, first.id]
        assert loaded[0].task_mode is TaskMode.PROMPTING
        assert loaded[0].result == single("2")

    @pytest.mark.asyncio
    async def test_cap_drops_oldest(self, store):
        """51 appends leave 50 entries; the oldest survivor is the second append."""
        ledger = HistoryLedger(store)
        appended = [await ledger.append(f"in {i}", TaskMode.CODING, single()) for i in range(51)]

        loaded = await HistoryLedger(store).load()

        assert len(loaded) == MAX_HISTORY_ENTRIES
        assert loaded[0].id == appended[-1].id
        assert loaded[-1].id == appended[1].id

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, store):
        ledger = HistoryLedger(store)
        entries = [await ledger.append("x", TaskMode.CODING, single()) for _ in range(20)]

        assert len({e.id for e in entries}) == 20

    @pytest.mark.asyncio
    async def test_timestamps_never_decrease(self, store, monkeypatch):
        clock = iter([5_000, 4_000, 6_000])
        monkeypatch.setattr("hyokai_storage.history.ledger.now_ms", lambda: next(clock))
        ledger = HistoryLedger(store)

        stamps = [(await ledger.append("x", TaskMode.CODING, single())).timestamp for _ in range(3)]

        assert stamps == [5_000, 5_000, 6_000]

    @pytest.mark.asyncio
    async def test_compare_result_round_trips(self, store):
        result = CompareModelResult(
            results=[
                ModelOutput("gpt-4o", "openai", output="a", elapsed_time=1.5),
                ModelOutput("claude", "anthropic", error="rate limited"),
            ],
            applied_instructions=["be concise"],
        )
        await HistoryLedger(store).append("compare me", TaskMode.CODING, result)

        loaded = await HistoryLedger(store).load()

        assert loaded[0].result == result
        stored = json.loads(await store.read_text(keys.HISTORY))
        assert stored[0]["result"]["type"] == "compare"
        assert stored[0]["taskMode"] == "coding"

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self, store):
        good = HistoryEntry(
            id="1-abc", timestamp=1, input="ok", task_mode=TaskMode.CODING, result=single()
        ).to_dict()
        await store.write(keys.HISTORY, [good, {"id": "2"}, {**good, "result": {"type": "???"}}])

        loaded = await HistoryLedger(store).load()

        assert [e.id for e in loaded] == ["1-abc"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "bad_result", [None, "oops", ["single"], {"type": "compare", "results": ["x"]}]
    )
    async def test_non_object_result_is_skipped(self, store, bad_result):
        good = HistoryEntry(
            id="1-abc", timestamp=1, input="ok", task_mode=TaskMode.CODING, result=single()
        ).to_dict()
        await store.write(keys.HISTORY, [good, {**good, "id": "2-abc", "result": bad_result}])

        loaded = await HistoryLedger(store).load()

        assert [e.id for e in loaded] == ["1-abc"]

    @pytest.mark.asyncio
    async def test_non_list_payload_is_empty(self, store):
        await store.write(keys.HISTORY, {"not": "a list"})

        assert await HistoryLedger(store).load() == []

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        ledger = HistoryLedger(store)
        keep = await ledger.append("keep", TaskMode.CODING, single())
        drop = await ledger.append("drop", TaskMode.CODING, single())

        await ledger.delete_entry(drop.id)
        await ledger.delete_entry("missing-id")
        assert [e.id for e in await HistoryLedger(store).load()] == [keep.id]

        await ledger.clear()
        assert ledger.entries == []
        assert await store.read_text(keys.HISTORY) is None

    @pytest.mark.asyncio
    async def test_quota_trims_in_memory_view(self, store, backend):
        ledger = HistoryLedger(store)
        for i in range(3):
            await ledger.append(f"in {i}", TaskMode.CODING, single())
        backend.quota_on_lengths = {4}

        newest = await ledger.append("newest", TaskMode.CODING, single())

        assert len(ledger.entries) == 3
        assert ledger.entries[0].id == newest.id

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, store):
        ledger = HistoryLedger(store)
        events = []
        unsubscribe = ledger.subscribe(lambda action, payload: events.append(action))

        entry = await ledger.append("x", TaskMode.CODING, single())
        await ledger.delete_entry(entry.id)
        unsubscribe()
        await ledger.append("y", TaskMode.CODING, single())

        assert events == ["append", "delete"]


class TestSimpleHistoryLedger:
    """Tests for the beginner-mode ledger."""

    @pytest.mark.asyncio
    async def test_cap_and_prefix(self, store):
        ledger = SimpleHistoryLedger(store)
        for i in range(35):
            await ledger.append(f"in {i}", f"out {i}", elapsed_time=0.2)

        loaded = await SimpleHistoryLedger(store).load()

        assert len(loaded) == MAX_SIMPLE_HISTORY_ENTRIES
        assert loaded[0].input == "in 34"
        assert all(e.id.startswith("simple-") for e in loaded)

    @pytest.mark.asyncio
    async def test_kept_apart_from_advanced_history(self, store):
        await SimpleHistoryLedger(store).append("in", "out")

        assert await HistoryLedger(store).load() == []
        assert await store.read_text(keys.HISTORY) is None


class TestFormatting:
    """Tests for display helpers."""

    NOW = int(datetime(2025, 6, 15, 12, 0).timestamp() * 1000)

    @pytest.mark.parametrize(
        "age_ms, expected",
        [
            (10_000, "Just now"),
            (5 * 60_000, "5m ago"),
            (3 * 3_600_000, "3h ago"),
            (2 * 86_400_000, "2d ago"),
        ],
    )
    def test_relative(self, age_ms, expected):
        assert format_timestamp(self.NOW - age_ms, now=self.NOW) == expected

    def test_older_than_a_week_shows_date(self):
        timestamp = int(datetime(2025, 5, 1, 9, 0).timestamp() * 1000)

        assert format_timestamp(timestamp, now=self.NOW) == "May 1"

    def test_previous_year_includes_year(self):
        timestamp = int(datetime(2024, 12, 24, 9, 0).timestamp() * 1000)

        assert format_timestamp(timestamp, now=self.NOW) == "Dec 24, 2024"

    def test_truncate_text(self):
        assert truncate_text("short") == "short"
        assert truncate_text("abcde fghij", 6) == "abcde..."
        assert len(truncate_text("x" * 300)) == 103


class TestHistoryMirror:
    """Tests for mirroring ledger changes to the account store."""

    @pytest.mark.asyncio
    async def test_append_mirrors_when_signed_in(self, store, session, account_store, fast_retry):
        await session.sign_in("user-1")
        ledger = HistoryLedger(store)
        simple = SimpleHistoryLedger(store)
        mirror = HistoryMirror(account_store, session, fast_retry)
        mirror.attach(ledger, simple)

        entry = await ledger.append("x", TaskMode.CODING, single())
        simple_entry = await simple.append("in", "out")
        await mirror.drain()

        rows = await account_store.select(RemoteTable.HISTORY_ENTRIES, "user-1")
        assert [r["id"] for r in rows] == [entry.id]
        assert rows[0]["result_data"]["type"] == "single"
        simple_rows = await account_store.select(RemoteTable.SIMPLE_HISTORY_ENTRIES, "user-1")
        assert [r["id"] for r in simple_rows] == [simple_entry.id]

    @pytest.mark.asyncio
    async def test_signed_out_writes_stay_local(self, store, session, account_store):
        ledger = HistoryLedger(store)
        mirror = HistoryMirror(account_store, session)
        mirror.attach(history=ledger)

        await ledger.append("x", TaskMode.CODING, single())

        assert mirror.pending == 0
        assert account_store.count("upsert") == 0

    @pytest.mark.asyncio
    async def test_delete_is_mirrored(self, store, session, account_store, fast_retry):
        await session.sign_in("user-1")
        ledger = HistoryLedger(store)
        mirror = HistoryMirror(account_store, session, fast_retry)
        mirror.attach(history=ledger)

        entry = await ledger.append("x", TaskMode.CODING, single())
        await mirror.drain()
        await ledger.delete_entry(entry.id)
        await mirror.drain()

        assert await account_store.select(RemoteTable.HISTORY_ENTRIES, "user-1") == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, store, session, account_store, fast_retry):
        await session.sign_in("user-1")
        account_store.fail("upsert:history_entries", RemoteStoreError("HTTP 503 from POST"))
        ledger = HistoryLedger(store)
        mirror = HistoryMirror(account_store, session, fast_retry)
        mirror.attach(history=ledger)

        await ledger.append("x", TaskMode.CODING, single())
        await mirror.drain()

        assert account_store.count("upsert", "history_entries") == 2
        assert len(await account_store.select(RemoteTable.HISTORY_ENTRIES, "user-1")) == 1

    @pytest.mark.asyncio
    async def test_exhausted_failure_is_logged_not_raised(
        self, store, session, account_store, fast_retry, caplog
    ):
        await session.sign_in("user-1")
        account_store.fail(
            "upsert:history_entries", *[RemoteStoreError("network down") for _ in range(3)]
        )
        ledger = HistoryLedger(store)
        mirror = HistoryMirror(account_store, session, fast_retry)
        mirror.attach(history=ledger)

        with caplog.at_level(logging.ERROR):
            entry = await ledger.append("x", TaskMode.CODING, single())
            await mirror.drain()

        assert f"Failed to mirror history_entries entry {entry.id}" in caplog.text
        assert [e.id for e in await HistoryLedger(store).load()] == [entry.id]

    @pytest.mark.asyncio
    async def test_detach_stops_mirroring(self, store, session, account_store):
        await session.sign_in("user-1")
        ledger = HistoryLedger(store)
        mirror = HistoryMirror(account_store, session)
        detach = mirror.attach(history=ledger)

        detach()
        await ledger.append("x", TaskMode.CODING, single())

        assert mirror.pending == 0
