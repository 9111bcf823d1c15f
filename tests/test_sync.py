"""Tests for the sync engine: boot sequencing, optimistic writes, status."""

from __future__ import annotations

import asyncio
import json
import threading
import time
from datetime import date
from pathlib import Path

import pytest

from tracker42.config import TrackerConfig
from tracker42.errors import RemoteUnavailable, RemoteWriteFailed
from tracker42.model import ClearDay, DayRecord, SaveNote, Toggle, normalize_all
from tracker42.storage import LocalCache
from tracker42.sync import Authority, SyncEngine, SyncState, boot
from tracker42.tasks import TASK_IDS

START = date(2025, 2, 18)
ALL = list(TASK_IDS)


class FakeRemote:
    def __init__(self, data=None, fetch_error: Exception | None = None, fail_saves: bool = False):
        self.data = data or {}
        self.fetch_error = fetch_error
        self.fail_saves = fail_saves
        self.fetch_gate: threading.Event | None = None
        self.saved: list[tuple[int, DayRecord]] = []

    def fetch_all(self):
        if self.fetch_gate is not None:
            self.fetch_gate.wait(5)
        if self.fetch_error is not None:
            raise self.fetch_error
        return normalize_all(self.data)

    def save_day(self, index, record):
        self.saved.append((index, record))
        if self.fail_saves:
            raise RemoteWriteFailed("quota exceeded")


@pytest.fixture()
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "tracker42.json"


def _engine(cache_path: Path, remote) -> SyncEngine:
    return SyncEngine(LocalCache(cache_path), remote, START, 42, today=lambda: date(2025, 2, 21))


def _seed(cache_path: Path, data: dict) -> None:
    cache_path.write_text(json.dumps(data), encoding="utf-8")


# ---- boot ----


def test_boot_offline_uses_migrated_cache(cache_path):
    _seed(cache_path, {"day1": ["pushup", "journal"], "day2": {"tasks": ["ml"]}})
    engine = _engine(cache_path, FakeRemote(fetch_error=RemoteUnavailable("down")))

    asyncio.run(engine.start())

    ds = engine.current_dataset()
    assert ds.get(0) == DayRecord(tasks=["pushup", "journal"], note="")
    assert ds.get(1) == DayRecord(tasks=["ml"], note="")
    status = engine.sync_status()
    assert status.state == SyncState.ERROR
    assert status.offline is True
    assert "Offline" in status.message
    assert engine.authority == Authority.LOCAL


def test_boot_without_remote_is_offline(cache_path):
    _seed(cache_path, {"day3": ["ts"]})
    engine = _engine(cache_path, None)
    asyncio.run(engine.start())
    assert engine.current_dataset().tasks(2) == ["ts"]
    assert engine.sync_status().offline is True


def test_boot_corrupt_cache_and_failing_remote_gives_empty_dataset(cache_path):
    cache_path.write_text("{{{", encoding="utf-8")
    engine = _engine(cache_path, FakeRemote(fetch_error=RemoteUnavailable("down")))
    asyncio.run(engine.start())
    assert engine.current_dataset().record_count() == 0
    assert engine.snapshot().percentage == 0


def test_remote_replaces_local_wholesale(cache_path):
    _seed(cache_path, {"day1": ALL, "day2": ["ml"]})
    engine = _engine(cache_path, FakeRemote(data={"day1": [], "day5": {"tasks": ["ts"], "note": "n"}}))

    asyncio.run(engine.start())

    ds = engine.current_dataset()
    assert ds.tasks(0) == []
    assert ds.tasks(1) == []
    assert ds.get(4) == DayRecord(tasks=["ts"], note="n")
    assert engine.authority == Authority.REMOTE
    assert engine.sync_status().state == SyncState.OK


def test_remote_result_is_mirrored_to_cache(cache_path):
    _seed(cache_path, {"day1": ALL})
    engine = _engine(cache_path, FakeRemote(data={"day2": ["pushup"]}))
    asyncio.run(engine.start())
    stored = json.loads(cache_path.read_text(encoding="utf-8"))
    assert stored == {"day2": {"tasks": ["pushup"], "note": ""}}


def test_boot_repaints_before_and_after_fetch(cache_path):
    _seed(cache_path, {"day1": ALL})
    seen = []

    async def main():
        return await boot(
            TrackerConfig(data_path=cache_path),
            listeners=[lambda snap: seen.append(snap.full_days)],
            today=lambda: START,
        )

    engine = asyncio.run(main())
    assert seen == [1, 1]
    assert engine.sync_status().offline is True


def test_start_only_once(cache_path):
    engine = _engine(cache_path, None)

    async def main():
        await engine.start()
        with pytest.raises(RuntimeError):
            await engine.start()

    asyncio.run(main())


# ---- mutations ----


def test_mutate_pushes_one_day(cache_path):
    remote = FakeRemote()
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        task = engine.mutate(2, Toggle("pushup"))
        assert engine.sync_status().state == SyncState.SAVING
        assert await task is True

    asyncio.run(main())
    assert remote.saved == [(2, DayRecord(tasks=["pushup"], note=""))]
    assert engine.sync_status().state == SyncState.OK


def test_mutate_persists_cache_synchronously(cache_path):
    engine = _engine(cache_path, None)

    async def main():
        await engine.start()
        assert engine.mutate(0, SaveNote("  first day  ")) is None
        stored = json.loads(cache_path.read_text(encoding="utf-8"))
        assert stored["day1"] == {"tasks": [], "note": "first day"}

    asyncio.run(main())


def test_failed_save_keeps_local_mutation(cache_path):
    remote = FakeRemote(fail_saves=True)
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        engine.mutate(0, Toggle("journal"))
        await engine.drain()

    asyncio.run(main())
    assert engine.current_dataset().tasks(0) == ["journal"]
    assert LocalCache(cache_path).load().tasks(0) == ["journal"]
    status = engine.sync_status()
    assert status.state == SyncState.ERROR
    assert "kept locally" in status.message
    assert len(remote.saved) == 1


def test_pushed_record_is_a_snapshot(cache_path):
    remote = FakeRemote()
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        engine.mutate(0, Toggle("pushup"))
        engine.mutate(0, ClearDay())
        await engine.drain()

    asyncio.run(main())
    sent = sorted(remote.saved, key=lambda s: len(s[1].tasks))
    assert [r.tasks for _, r in sent] == [[], ["pushup"]]


def test_stale_failure_does_not_override_status(cache_path):
    gate = threading.Event()

    class SlowFirstRemote(FakeRemote):
        def save_day(self, index, record):
            self.saved.append((index, record))
            if "journal" not in record.tasks:
                gate.wait(5)
                raise RemoteWriteFailed("late failure")

    engine = _engine(cache_path, SlowFirstRemote())

    async def main():
        await engine.start()
        first = engine.mutate(0, Toggle("pushup"))
        second = engine.mutate(0, Toggle("journal"))
        gate.set()
        assert await first is False
        assert engine.sync_status().state == SyncState.SAVING
        assert await second is True

    asyncio.run(main())
    assert engine.sync_status().state == SyncState.OK


def test_same_day_pushes_land_in_order(cache_path):
    class SlowFirstRemote(FakeRemote):
        def __init__(self):
            super().__init__()
            self.stored: dict[int, list[str]] = {}

        def save_day(self, index, record):
            if not self.saved:
                time.sleep(0.2)
            self.saved.append((index, record))
            self.stored[index] = list(record.tasks)

    remote = SlowFirstRemote()
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        engine.mutate(2, Toggle("pushup"))
        engine.mutate(2, Toggle("journal"))
        await engine.drain()

    asyncio.run(main())
    assert [r.tasks for _, r in remote.saved] == [["pushup"], ["pushup", "journal"]]
    assert remote.stored[2] == ["pushup", "journal"]
    assert engine.sync_status().state == SyncState.OK


def test_other_days_do_not_wait(cache_path):
    gate = threading.Event()

    class BlockedDayRemote(FakeRemote):
        def save_day(self, index, record):
            if index == 0:
                gate.wait(5)
            self.saved.append((index, record))

    remote = BlockedDayRemote()
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        engine.mutate(0, Toggle("pushup"))
        other = engine.mutate(1, Toggle("ml"))
        assert await other is True
        assert [i for i, _ in remote.saved] == [1]
        gate.set()
        await engine.drain()

    asyncio.run(main())
    assert [i for i, _ in remote.saved] == [1, 0]


def test_failing_listener_still_persists_and_pushes(cache_path):
    remote = FakeRemote()
    engine = _engine(cache_path, remote)
    armed = []

    def listener(snap):
        if armed:
            raise RuntimeError("render failed")

    engine.subscribe(listener)

    async def main():
        await engine.start()
        armed.append(True)
        with pytest.raises(RuntimeError):
            engine.mutate(0, Toggle("thesis"))
        await engine.drain()

    asyncio.run(main())
    assert LocalCache(cache_path).load().tasks(0) == ["thesis"]
    assert remote.saved == [(0, DayRecord(tasks=["thesis"], note=""))]


def test_mutation_during_initial_load_survives_replace(cache_path):
    remote = FakeRemote(data={"day1": [], "day2": ["ts"]})
    remote.fetch_gate = threading.Event()
    engine = _engine(cache_path, remote)

    async def main():
        boot_task = asyncio.create_task(engine.start())
        while engine.sync_status().state != SyncState.LOADING:
            await asyncio.sleep(0.01)
        engine.mutate(0, Toggle("ml"))
        remote.fetch_gate.set()
        await boot_task
        await engine.drain()

    asyncio.run(main())
    ds = engine.current_dataset()
    assert ds.tasks(0) == ["ml"]
    assert ds.tasks(1) == ["ts"]
    assert engine.authority == Authority.REMOTE


def test_mutate_out_of_window_changes_nothing(cache_path):
    engine = _engine(cache_path, FakeRemote())

    async def main():
        await engine.start()
        with pytest.raises(IndexError):
            engine.mutate(42, Toggle("pushup"))

    asyncio.run(main())
    assert engine.current_dataset().record_count() == 0


def test_mutate_repaints(cache_path):
    engine = _engine(cache_path, None)
    seen = []
    engine.subscribe(lambda snap: seen.append(snap.counts[0]))

    async def main():
        await engine.start()
        for tid in ALL:
            engine.mutate(0, Toggle(tid))

    asyncio.run(main())
    assert seen[-1] == 7
    assert engine.snapshot().kinds[0] == "full"


def test_push_day_resends_current_state(cache_path):
    remote = FakeRemote(data={"day4": {"tasks": ["thesis"], "note": "draft"}})
    engine = _engine(cache_path, remote)

    async def main():
        await engine.start()
        assert await engine.push_day(3) is True

    asyncio.run(main())
    assert remote.saved == [(3, DayRecord(tasks=["thesis"], note="draft"))]
