"""Local-first synchronization engine.

Boot:   cache -> repaint -> fetch_all -> wholesale replace -> cache -> repaint
Mutate: memory -> cache (sync) -> save_day (async, best effort) -> repaint

Pushes for the same day run one after another, oldest first.

Runs on one asyncio loop. Blocking HTTP goes through ``asyncio.to_thread`` so
the loop thread is the only writer of the dataset.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum

from . import metrics
from .config import TrackerConfig
from .errors import RemoteUnavailable, RemoteWriteFailed
from .model import Dataset, DayOp, DayRecord, day_key
from .remote import RemoteClient
from .storage import LocalCache

log = logging.getLogger(__name__)


class Authority(str, Enum):
    LOCAL = "local-authoritative"
    REMOTE = "remote-reconciled"


class SyncState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"
    OK = "ok"
    ERROR = "error"


ICONS = {
    SyncState.IDLE: "☁️",
    SyncState.LOADING: "⏳",
    SyncState.SAVING: "💾",
    SyncState.OK: "✅",
    SyncState.ERROR: "❌",
}


@dataclass(frozen=True)
class SyncStatus:
    state: SyncState
    message: str
    offline: bool = False

    def __str__(self) -> str:
        return f"{ICONS[self.state]} {self.message}"


Listener = Callable[[metrics.Snapshot], None]


class SyncEngine:
    def __init__(
        self,
        cache: LocalCache,
        remote: RemoteClient | None,
        start: date,
        total_days: int,
        today: Callable[[], date] | None = None,
    ):
        self.cache = cache
        self.remote = remote
        self.start_date = start
        self._today = today
        self._dataset = Dataset(total_days)
        self._status = SyncStatus(SyncState.IDLE, "Not started")
        self.authority = Authority.LOCAL
        self._listeners: list[Listener] = []
        self._started = False
        self._loading = False
        self._dirty_while_loading: set[str] = set()
        self._seq: dict[str, int] = {}
        self._pending: set[asyncio.Task] = set()
        self._tails: dict[str, asyncio.Task] = {}

    # -------- collaborator surface --------

    def current_dataset(self) -> Dataset:
        return self._dataset

    def sync_status(self) -> SyncStatus:
        return self._status

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> metrics.Snapshot:
        today = self._today() if self._today else None
        return metrics.compute(self._dataset, self.start_date, today)

    def _repaint(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for fn in self._listeners:
            fn(snap)

    def _set_status(self, state: SyncState, message: str, offline: bool = False) -> None:
        self._status = SyncStatus(state, message, offline)
        log.debug("sync status: %s %s", state.value, message)

    # -------- boot --------

    async def start(self) -> SyncEngine:
        if self._started:
            raise RuntimeError("SyncEngine.start() may only run once per session")
        self._started = True

        self._dataset = self.cache.load()
        self.authority = Authority.LOCAL
        self._repaint()

        if self.remote is None:
            self._set_status(SyncState.ERROR, "Offline - no remote configured", offline=True)
            self._repaint()
            return self

        self._set_status(SyncState.LOADING, "Loading from remote…")
        self._loading = True
        try:
            fresh = await asyncio.to_thread(self.remote.fetch_all)
        except RemoteUnavailable as e:
            log.warning("remote load failed, using local data: %s", e)
            self._set_status(SyncState.ERROR, "Offline - using local data", offline=True)
        else:
            self._reconcile(fresh)
            self.cache.save(self._dataset)
            self.authority = Authority.REMOTE
            self._set_status(SyncState.OK, "Synced with remote")
            log.info("reconciled %d day records from remote", self._dataset.record_count())
        finally:
            self._loading = False
            self._dirty_while_loading.clear()

        self._repaint()
        return self

    def _reconcile(self, fresh: dict[str, DayRecord]) -> None:
        # remote wins wholesale, except days the user touched while the fetch was in flight
        kept = {k: self._dataset.record_for_key(k) for k in self._dirty_while_loading}
        self._dataset.replace(fresh)
        for key, rec in kept.items():
            if rec is not None:
                self._dataset.put_key(key, rec)
        if kept:
            log.info("kept %d locally edited day(s) over the remote copy", len(kept))

    # -------- mutations --------

    def mutate(self, index: int, op: DayOp) -> asyncio.Task | None:
        """Apply op optimistically; returns the scheduled remote push, if any."""
        loop = asyncio.get_running_loop()
        record = op.apply(self._dataset, index)
        key = day_key(index)
        if self._loading:
            self._dirty_while_loading.add(key)
        log.debug("%s %r -> %s", key, op, record.tasks)

        # cache and push first; listeners may raise
        self.cache.save(self._dataset)
        task = self._schedule_push(loop, index, record)
        self._repaint()
        return task

    def push_day(self, index: int) -> asyncio.Task | None:
        """Re-send one day as it is now (manual retry)."""
        loop = asyncio.get_running_loop()
        return self._schedule_push(loop, index, self._dataset.get(index))

    def _schedule_push(self, loop: asyncio.AbstractEventLoop, index: int,
                       record: DayRecord) -> asyncio.Task | None:
        if self.remote is None:
            return None
        key = day_key(index)
        seq = self._seq.get(key, 0) + 1
        self._seq[key] = seq
        self._set_status(SyncState.SAVING, "Saving…")
        previous = self._tails.get(key)
        task = loop.create_task(self._push(self.remote, index, record.copy(), seq, previous))
        self._tails[key] = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda t: self._forget_tail(key, t))
        return task

    def _forget_tail(self, key: str, task: asyncio.Task) -> None:
        if self._tails.get(key) is task:
            del self._tails[key]

    async def _push(self, remote: RemoteClient, index: int, record: DayRecord, seq: int,
                    previous: asyncio.Task | None) -> bool:
        key = day_key(index)
        if previous is not None:
            # same-day writes reach the remote in the order they were made
            await asyncio.wait({previous})
        try:
            await asyncio.to_thread(remote.save_day, index, record)
        except RemoteWriteFailed as e:
            ok = False
            log.warning("remote save failed: %s", e)
        else:
            ok = True

        if self._seq.get(key) != seq:
            log.debug("%s push #%d superseded by #%d; status unchanged", key, seq, self._seq.get(key))
            return ok
        if ok:
            self._set_status(SyncState.OK, "Saved to remote")
        else:
            self._set_status(SyncState.ERROR, "Save failed - kept locally")
        return ok

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))


def build_engine(config: TrackerConfig, today: Callable[[], date] | None = None) -> SyncEngine:
    cache = LocalCache(config.data_path, config.total_days)
    remote = None
    if config.remote_url:
        remote = RemoteClient(config.remote_url, schema=config.schema, timeout=config.timeout)
    return SyncEngine(cache, remote, config.start_date, config.total_days, today=today)


async def boot(
    config: TrackerConfig,
    listeners: Iterable[Listener] = (),
    today: Callable[[], date] | None = None,
) -> SyncEngine:
    """The single entry point the lock gate calls once authorization succeeds."""
    engine = build_engine(config, today=today)
    for fn in listeners:
        engine.subscribe(fn)
    return await engine.start()
