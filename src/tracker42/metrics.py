"""Derived read-only analytics over a Dataset.

Everything here is pure and recomputed from scratch on every change. Only ids
from the task catalogue count; unknown ids carried in a record are ignored.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from ._util import _today, day_date, day_for_date
from .model import Dataset, DayRecord
from .tasks import TASKS, TaskDefinition

FULL = "full"
PARTIAL = "partial"
EMPTY = "empty"


def completed_count(record: DayRecord, task_ids: Sequence[str]) -> int:
    known = set(task_ids)
    return sum(1 for t in record.tasks if t in known)


def classify(count: int, n_tasks: int) -> str:
    if n_tasks and count >= n_tasks:
        return FULL
    if count > 0:
        return PARTIAL
    return EMPTY


def completion_fraction(record: DayRecord, task_ids: Sequence[str]) -> float:
    if not task_ids:
        return 0.0
    return completed_count(record, task_ids) / len(task_ids)


def day_counts(dataset: Dataset, task_ids: Sequence[str]) -> list[int]:
    return [completed_count(dataset.get(i), task_ids) for i in dataset]


def _current_streak(counts: Sequence[int], n_tasks: int, start: date, today: date) -> int:
    streak = 0
    for i in range(len(counts) - 1, -1, -1):
        if day_date(start, i) > today:
            continue
        if classify(counts[i], n_tasks) == FULL:
            streak += 1
        else:
            break
    return streak


def _best_streak(counts: Sequence[int], n_tasks: int) -> int:
    best = cur = 0
    for c in counts:
        if classify(c, n_tasks) == FULL:
            cur += 1
            best = max(best, cur)
        else:
            cur = 0
    return best


def _percentage(counts: Sequence[int], n_tasks: int) -> int:
    possible = len(counts) * n_tasks
    if possible <= 0:
        return 0
    done = sum(counts)
    pct = (200 * done + possible) // (2 * possible)  # half-up
    # 100 is reserved for a window where every day is full
    return pct if done >= possible else min(pct, 99)


def current_streak(dataset: Dataset, start: date, today: date | None = None,
                   task_ids: Sequence[str] | None = None) -> int:
    """Consecutive full days ending at today; days after today are skipped, not breaks."""
    ids = task_ids if task_ids is not None else [t.id for t in TASKS]
    return _current_streak(day_counts(dataset, ids), len(ids), start, today or _today())


def best_streak(dataset: Dataset, task_ids: Sequence[str] | None = None) -> int:
    ids = task_ids if task_ids is not None else [t.id for t in TASKS]
    return _best_streak(day_counts(dataset, ids), len(ids))


def completion_percentage(dataset: Dataset, task_ids: Sequence[str] | None = None) -> int:
    ids = task_ids if task_ids is not None else [t.id for t in TASKS]
    return _percentage(day_counts(dataset, ids), len(ids))


def task_totals(dataset: Dataset, tasks: Sequence[TaskDefinition] = TASKS) -> dict[str, int]:
    totals = {t.id: 0 for t in tasks}
    for i in dataset:
        for tid in dataset.tasks(i):
            if tid in totals:
                totals[tid] += 1
    return totals


def task_matrix(dataset: Dataset, tasks: Sequence[TaskDefinition] = TASKS) -> dict[str, list[bool]]:
    """Heatmap rows: task id -> one done/missed flag per day."""
    rows: dict[str, list[bool]] = {t.id: [] for t in tasks}
    for i in dataset:
        done = set(dataset.tasks(i))
        for t in tasks:
            rows[t.id].append(t.id in done)
    return rows


@dataclass(frozen=True)
class Snapshot:
    total_days: int
    n_tasks: int
    start: date
    today: date
    today_index: int | None
    counts: tuple[int, ...]
    kinds: tuple[str, ...]
    notes: tuple[bool, ...]
    full_days: int
    percentage: int
    current_streak: int
    best_streak: int
    task_totals: dict[str, int]
    quantities: dict[str, int]
    matrix: dict[str, list[bool]]

    def fraction(self, index: int) -> float:
        return self.counts[index] / self.n_tasks if self.n_tasks else 0.0

    @property
    def intensity_series(self) -> list[int]:
        return list(self.counts)

    @property
    def breakdown_series(self) -> list[int]:
        return list(self.task_totals.values())


def compute(dataset: Dataset, start: date, today: date | None = None,
            tasks: Sequence[TaskDefinition] = TASKS) -> Snapshot:
    today = today or _today()
    ids = [t.id for t in tasks]
    n = len(ids)
    counts = day_counts(dataset, ids)
    kinds = tuple(classify(c, n) for c in counts)
    totals = task_totals(dataset, tasks)
    return Snapshot(
        total_days=dataset.total_days,
        n_tasks=n,
        start=start,
        today=today,
        today_index=day_for_date(start, dataset.total_days, today),
        counts=tuple(counts),
        kinds=kinds,
        notes=tuple(bool(dataset.note(i)) for i in dataset),
        full_days=sum(1 for k in kinds if k == FULL),
        percentage=_percentage(counts, n),
        current_streak=_current_streak(counts, n, start, today),
        best_streak=_best_streak(counts, n),
        task_totals=totals,
        quantities={t.id: t.per_day * totals[t.id] for t in tasks},
        matrix=task_matrix(dataset, tasks),
    )
