"""The fixed daily checklist.

Tuple order is display order everywhere (legend, grid dots, charts, CSV columns).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TaskDefinition:
    id: str
    name: str
    sub: str
    color: str
    emoji: str
    per_day: int = 1  # quantity credited per completed day (pushups = 50)

    @property
    def label(self) -> str:
        return f"{self.emoji} {self.name}"


TASKS: tuple[TaskDefinition, ...] = (
    TaskDefinition("pushup", "50 Pushups", "Daily non-negotiable", "#00ff88", "💪", per_day=50),
    TaskDefinition("journal", "Journaling", "Reflect & plan", "#ff6b35", "📓"),
    TaskDefinition("english", "English (FreeCodeCamp)", "A2→B2 track", "#4d9fff", "🌍"),
    TaskDefinition("linkedin", "LinkedIn Post", "GeoAI forecasting, 3h study", "#c77dff", "📡"),
    TaskDefinition("thesis", "Thesis / Research", "Writing or analysis", "#ffd166", "📖"),
    TaskDefinition("ml", "ML / DL / PyTorch", "Coursera + practice", "#ff4d8d", "🤖"),
    TaskDefinition("ts", "Time Series", "R + Python + models", "#00e5ff", "📈"),
)

TASK_IDS: tuple[str, ...] = tuple(t.id for t in TASKS)


def task_by_id(task_id: str) -> TaskDefinition | None:
    for t in TASKS:
        if t.id == task_id:
            return t
    return None
