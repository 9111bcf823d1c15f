from __future__ import annotations

import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def find_git_root(start: Path) -> Path | None:
    cur = start
    for _ in range(200):
        if (cur / ".git").exists():
            return cur
        if cur.parent == cur:
            return None
        cur = cur.parent
    return None


def assert_safe_data_path(data_path: Path, allow_repo_data_path: bool) -> None:
    # the cache holds personal notes; keep it out of anything that might get committed
    git_root = find_git_root(data_path.parent)
    if git_root is None:
        return
    if allow_repo_data_path:
        log.warning("cache %s lives inside git repo %s (allowed by flag)", data_path, git_root)
        return
    print("🚫 Refusing to keep the tracker cache inside a git repo.", file=sys.stderr)
    print(f"   cache:     {data_path}", file=sys.stderr)
    print(f"   repo_root: {git_root}", file=sys.stderr)
    print(
        "   Fix: use ~/.config/tracker42/*.json, set TRACKER42_DATA, or pass --allow-repo-data-path",
        file=sys.stderr,
    )
    raise SystemExit(2)
