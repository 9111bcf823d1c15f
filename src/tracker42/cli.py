from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import stat
from pathlib import Path
from typing import Any

from ._util import _fmt_day, day_date
from .config import load_config
from .errors import LocalCacheCorrupt, RemoteUnavailable
from .metrics import EMPTY, FULL, PARTIAL, Snapshot
from .model import ClearDay, SaveNote, Toggle
from .paths import data_path_reason
from .remote import RemoteClient
from .safety import assert_safe_data_path
from .storage import read_json
from .sync import SyncEngine, boot
from .tasks import TASK_IDS, TASKS, task_by_id
from .timeparse import parse_day


GLYPHS = {FULL: "■", PARTIAL: "◧", EMPTY: "·"}


# -------------------------
# Parsing helpers
# -------------------------

def _parse_task_ids(raw: list[str] | str | None) -> list[str]:
    """Comma/space separated task ids, de-duplicated in order; unknown ids exit."""
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]
    out: list[str] = []
    seen = set()
    for chunk in " ".join(raw).replace(",", " ").split():
        key = chunk.strip().lower()
        if not key or key in seen:
            continue
        if key not in TASK_IDS:
            raise SystemExit(f"Unknown task {chunk!r}. Known tasks: {', '.join(TASK_IDS)}")
        seen.add(key)
        out.append(key)
    return out


def _day_arg(args: argparse.Namespace) -> int:
    cfg = args.config
    return parse_day(args.day, cfg.start_date, cfg.total_days)


# -------------------------
# Formatting helpers
# -------------------------

def _sparkline(values: list[float], vmin: float = 0.0, vmax: float = 7.0) -> str:
    if not values:
        return ""
    blocks = "▁▂▃▄▅▆▇█"
    span = max(1e-9, vmax - vmin)
    out = []
    for v in values:
        x = (v - vmin) / span
        idx = int(round(x * (len(blocks) - 1)))
        idx = max(0, min(len(blocks) - 1, idx))
        out.append(blocks[idx])
    return "".join(out)


def _bar(count: int, total: int, width: int = 20) -> str:
    if total <= 0:
        return ""
    return "█" * int(round(count / total * width))


def _grid_cell(snap: Snapshot, i: int) -> str:
    mark = GLYPHS[snap.kinds[i]]
    note = "✎" if snap.notes[i] else " "
    cell = f"{i + 1:>2}{mark}{note}"
    return f"[{cell}]" if i == snap.today_index else f" {cell} "


def _render_grid(snap: Snapshot, per_row: int = 7) -> list[str]:
    lines = []
    for row_start in range(0, snap.total_days, per_row):
        label = _fmt_day(day_date(snap.start, row_start))
        cells = "".join(_grid_cell(snap, i) for i in range(row_start, min(row_start + per_row, snap.total_days)))
        lines.append(f"{label:>7} {cells}")
    return lines


def _write_csv(out_path: Path, fieldnames: list[str], rows: list[dict[str, Any]]) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with out_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames, quoting=csv.QUOTE_MINIMAL)
        w.writeheader()
        if rows:
            w.writerows(rows)


def _print_day(engine: SyncEngine, index: int) -> None:
    rec = engine.current_dataset().get(index)
    d = day_date(engine.start_date, index)
    done = set(rec.tasks)
    print(f"=== Day {index + 1} · {_fmt_day(d)} ({d.isoformat()}) ===")
    for t in TASKS:
        box = "✓" if t.id in done else " "
        print(f"[{box}] {t.label:<28} {t.sub}")
    print(f"\n📝 {rec.note}" if rec.note else "\n📝 (no note)")


# -------------------------
# Read commands
# -------------------------

def cmd_tasks(args: argparse.Namespace) -> None:
    print("=== Daily checklist ===")
    for t in TASKS:
        print(f"{t.id:<9} {t.label:<28} {t.sub}")


def cmd_grid(args: argparse.Namespace) -> None:
    snap = args.engine.snapshot()
    print(f"=== {snap.total_days}-Day Grid ===")
    for line in _render_grid(snap):
        print(line)
    print(f"\n{GLYPHS[FULL]} full  {GLYPHS[PARTIAL]} partial  {GLYPHS[EMPTY]} empty  ✎ note  [ ] today")
    print(f"{snap.full_days} / {snap.total_days} days complete")


def cmd_show(args: argparse.Namespace) -> None:
    _print_day(args.engine, _day_arg(args))


def cmd_stats(args: argparse.Namespace) -> None:
    snap = args.engine.snapshot()
    print("====================")
    print("Tracker Summary")
    print("====================\n")

    print(f"💪 Pushups:        {snap.quantities.get('pushup', 0):,}")
    print(f"📓 Journal days:   {snap.task_totals.get('journal', 0)}")
    print(f"📡 LinkedIn posts: {snap.task_totals.get('linkedin', 0)}")
    print(f"🔥 Current streak: {snap.current_streak}")
    print(f"🏆 Best streak:    {snap.best_streak} days")
    print(f"📊 Completion:     {snap.percentage}%")
    print(f"✅ Full days:      {snap.full_days} / {snap.total_days}")

    print("\n[Per task]")
    for t in TASKS:
        c = snap.task_totals[t.id]
        print(f"{t.label:<28} {c:>3}  {_bar(c, snap.total_days)}")

    print("\n[Daily intensity]")
    print(_sparkline(snap.intensity_series, 0.0, float(snap.n_tasks)))


def cmd_heatmap(args: argparse.Namespace) -> None:
    snap = args.engine.snapshot()
    print(f"=== Heatmap (days 1–{snap.total_days}) ===")
    for t in TASKS:
        row = "".join("█" if done else "·" for done in snap.matrix[t.id])
        print(f"{t.emoji} {t.name.split(' ')[0]:<9} {row}")


def cmd_export(args: argparse.Namespace) -> None:
    engine: SyncEngine = args.engine
    ds = engine.current_dataset()
    snap = engine.snapshot()
    fieldnames = ["day", "date", "completed"] + list(TASK_IDS) + ["note"]
    rows: list[dict[str, Any]] = []
    for i in ds:
        done = set(ds.tasks(i))
        row: dict[str, Any] = {
            "day": i + 1,
            "date": day_date(engine.start_date, i).isoformat(),
            "completed": snap.counts[i],
            "note": ds.note(i),
        }
        for tid in TASK_IDS:
            row[tid] = 1 if tid in done else 0
        rows.append(row)

    out_path = Path(args.csv).expanduser().resolve()
    _write_csv(out_path, fieldnames, rows)
    print(f"📄 Exported {len(rows)} days → {out_path}")


# -------------------------
# Write commands
# -------------------------

def cmd_toggle(args: argparse.Namespace) -> None:
    engine: SyncEngine = args.engine
    index = _day_arg(args)
    task_ids = _parse_task_ids(args.tasks)
    if not task_ids:
        raise SystemExit("Give at least one task id (see `t42 tasks`).")
    for tid in task_ids:
        engine.mutate(index, Toggle(tid))
    done = set(engine.current_dataset().tasks(index))
    for tid in task_ids:
        t = task_by_id(tid)
        state = "done" if tid in done else "not done"
        print(f"{t.label if t else tid}: {state}")


def cmd_clear(args: argparse.Namespace) -> None:
    engine: SyncEngine = args.engine
    index = _day_arg(args)
    label = f"Day {index + 1} ({_fmt_day(day_date(engine.start_date, index))})"
    if not args.yes:
        raise SystemExit(f"Refusing to clear {label} without --yes (notes are kept).")
    engine.mutate(index, ClearDay())
    print(f"🧹 Cleared all tasks for {label}.")


def cmd_note(args: argparse.Namespace) -> None:
    engine: SyncEngine = args.engine
    index = _day_arg(args)
    text = "" if args.clear else " ".join(args.text or [])
    if not args.clear and not text.strip():
        raise SystemExit("Note text required (or pass --clear).")
    if text.strip() == engine.current_dataset().note(index):
        print("Note unchanged.")
        return
    engine.mutate(index, SaveNote(text))
    print(f"📝 Note for day {index + 1} {'cleared' if args.clear else 'saved'}.")
    if not args.config.notes_synced:
        print("⚠️ Legacy remote schema: notes are kept locally only.")


def cmd_push(args: argparse.Namespace) -> None:
    engine: SyncEngine = args.engine
    index = _day_arg(args)
    if engine.push_day(index) is None:
        print("No remote configured; nothing to push.")


# -------------------------
# Core commands
# -------------------------

def cmd_where(args: argparse.Namespace) -> None:
    print(args.data_path)
    print(f"↳ using {data_path_reason(args.data_arg, args.profile)}")


def cmd_doctor(args: argparse.Namespace) -> None:
    cfg = args.config
    print("=== Tracker Doctor ===")

    assert_safe_data_path(cfg.data_path, args.allow_repo_data_path)
    print("✅ Cache path safety guard: OK")

    try:
        raw = read_json(cfg.data_path)
        print(f"✅ Cache readable: OK ({len(raw)} day records)")
    except LocalCacheCorrupt as e:
        print(f"⚠️ Cache corrupt (backed up, will start empty): {e}")

    try:
        perms = stat.S_IMODE(cfg.data_path.stat().st_mode)
        print(f"🔐 File permissions: {oct(perms)} (target 0o600)")
    except FileNotFoundError:
        print("⚠️ Cache file missing (created on first change)")

    print(f"📅 Window: {cfg.start_date.isoformat()} + {cfg.total_days} days, schema {cfg.schema}")
    if not cfg.remote_url:
        print("⚠️ No remote configured (set TRACKER42_REMOTE_URL)")
    else:
        client = RemoteClient(cfg.remote_url, schema=cfg.schema, timeout=cfg.timeout)
        try:
            n = len(client.fetch_all())
            print(f"✅ Remote reachable: OK ({n} day records)")
        except RemoteUnavailable as e:
            print(f"❌ Remote unavailable: {e}")

    print("=== Done ===")


async def _run_booted(args: argparse.Namespace) -> None:
    args.engine = await boot(args.config)
    try:
        args.func(args)
    finally:
        await args.engine.drain()
        print(f"\n{args.engine.sync_status()}")


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv=None) -> None:
    p = argparse.ArgumentParser(prog="t42", description="42-day master tracker")
    p.add_argument("--data", default=None, help="Path to cache JSON (overrides env/default)")
    p.add_argument("--profile", default=None, help="Profile name (e.g. dev/test)")
    p.add_argument("--allow-repo-data-path", action="store_true", help="Override safety guard (not recommended)")
    p.add_argument("--remote-url", default=None, help="Remote store URL (overrides TRACKER42_REMOTE_URL)")
    p.add_argument("--offline", action="store_true", help="Do not talk to the remote store")
    p.add_argument("--start-date", default=None, help="First day of the window (YYYY-MM-DD)")
    p.add_argument("--days", default=None, help="Window length in days")
    p.add_argument("--schema", default=None, choices=["canonical", "legacy"], help="Remote payload schema")
    p.add_argument("--timeout", default=None, help="Remote timeout in seconds")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")

    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("where", help="Show which cache file is active and why").set_defaults(func=cmd_where)
    sub.add_parser("doctor", help="Run safety + health checks").set_defaults(func=cmd_doctor)
    sub.add_parser("tasks", help="List the daily checklist").set_defaults(func=cmd_tasks)

    sub.add_parser("grid", help="Show the day grid").set_defaults(func=cmd_grid, boot=True)
    sub.add_parser("stats", help="Summary stats, streaks and charts").set_defaults(func=cmd_stats, boot=True)
    sub.add_parser("heatmap", help="Per-task completion heatmap").set_defaults(func=cmd_heatmap, boot=True)

    show = sub.add_parser("show", help="Show one day")
    show.add_argument("day", nargs="?", default="today", help="Day number, date, today, yesterday…")
    show.set_defaults(func=cmd_show, boot=True)

    export = sub.add_parser("export", help="Export one CSV row per day")
    export.add_argument("--csv", required=True, help="Output CSV path (e.g. ~/tracker42.csv)")
    export.set_defaults(func=cmd_export, boot=True)

    toggle = sub.add_parser("toggle", help="Tick/untick tasks for a day")
    toggle.add_argument("day", help="Day number, date, today, yesterday…")
    toggle.add_argument("tasks", nargs="+", help="Task ids, space or comma separated")
    toggle.set_defaults(func=cmd_toggle, boot=True)

    clear = sub.add_parser("clear", help="Untick every task of a day (requires --yes)")
    clear.add_argument("day", help="Day number, date, today, yesterday…")
    clear.add_argument("--yes", action="store_true", help="Confirm clearing the day")
    clear.set_defaults(func=cmd_clear, boot=True)

    note = sub.add_parser("note", help="Save or clear a day's note")
    note.add_argument("day", help="Day number, date, today, yesterday…")
    note.add_argument("text", nargs="*", help="Note text")
    note.add_argument("--clear", action="store_true", help="Remove the note")
    note.set_defaults(func=cmd_note, boot=True)

    push = sub.add_parser("push", help="Re-send one day to the remote store")
    push.add_argument("day", help="Day number, date, today, yesterday…")
    push.set_defaults(func=cmd_push, boot=True)

    args = p.parse_args(argv)
    _setup_logging(args.verbose)
    args.data_arg = args.data
    args.config = load_config(
        data_arg=args.data,
        profile=args.profile,
        remote_url=args.remote_url,
        offline=args.offline,
        start_date=args.start_date,
        total_days=args.days,
        schema=args.schema,
        timeout=args.timeout,
    )
    args.data_path = args.config.data_path

    assert_safe_data_path(args.data_path, args.allow_repo_data_path)

    if getattr(args, "boot", False):
        asyncio.run(_run_booted(args))
    else:
        args.func(args)


if __name__ == "__main__":
    main()
