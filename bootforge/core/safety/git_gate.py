# bootforge/core/safety/git_gate.py

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from bootforge.core.config.models import ExecutionContext
from bootforge.errors import PreconditionError


_log = logging.getLogger("bootforge.safety")

DIRTY_HINT = "Commit or stash changes, or set ALLOW_DIRTY=true to override."


# ---------------------------------------------------------------------
# git runner
# ---------------------------------------------------------------------

def _run_git(repo_path: Path, args: List[str]) -> Tuple[int, str, str]:
    p = subprocess.run(
        ["git", "--no-pager", *args],
        cwd=str(repo_path),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        env={**os.environ, "GIT_PAGER": "cat", "PAGER": "cat"},
    )
    return p.returncode, (p.stdout or "").strip(), (p.stderr or "").strip()


def git_available() -> bool:
    return shutil.which("git") is not None


def git_toplevel(path: Path) -> Optional[Path]:
    if not git_available() or not path.is_dir():
        return None
    rc, out, _ = _run_git(path, ["rev-parse", "--show-toplevel"])
    if rc != 0 or not out:
        return None
    return Path(out).resolve()


def worktree_status(path: Path) -> Dict[str, Any]:
    rc, status, err = _run_git(path, ["status", "--porcelain"])
    if rc != 0:
        raise PreconditionError(f"git status failed in {path}: {err}")
    return {
        "dirty": bool(status),
        "porcelain": status.splitlines() if status else [],
    }


# ---------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------

def ensure_clean_worktree(ctx: ExecutionContext) -> None:
    """Refuse to start a run on top of uncommitted changes."""
    if not ctx.git_safety:
        _log.debug("Git safety disabled (GIT_SAFETY=false)")
        return
    if ctx.allow_dirty:
        _log.debug("Dirty working tree allowed (ALLOW_DIRTY=true)")
        return

    target = ctx.install_dir if ctx.install_dir.is_dir() else ctx.project_root
    top = git_toplevel(target)
    if top is None:
        _log.debug("%s is not under version control; safety gate skipped", target)
        return

    status = worktree_status(target)
    if status["dirty"]:
        preview = status["porcelain"][:10]
        more = len(status["porcelain"]) - len(preview)
        detail = "\n".join(f"  {line}" for line in preview)
        if more > 0:
            detail += f"\n  ... and {more} more"
        raise PreconditionError(
            f"Working tree at {top} has uncommitted changes:\n{detail}",
            hint=DIRTY_HINT,
        )
    _log.debug("Working tree clean at %s", top)
